from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_GEOMETRY_CANDIDATES = ["geometry", "geom", "wkb_geometry", "wkb", "the_geom"]
DEFAULT_ATTRIBUTE_CANDIDATES = [
    "class",
    "class_id",
    "classval",
    "class_val",
    "cls",
    "value",
    "category",
]


class ColumnCandidates(BaseModel):
    """
    Ordered candidate names for each column role, plus the literal fallbacks.

    Earlier entries win. Fallback names are used verbatim even if the dataset has no
    such column; the query then fails at execution time with the engine's error.
    """

    geometry: list[str] = Field(default_factory=lambda: list(DEFAULT_GEOMETRY_CANDIDATES))
    attribute: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ATTRIBUTE_CANDIDATES)
    )
    geometryDefault: str = "geometry"
    attributeDefault: str = "class"

    @field_validator("geometry", "attribute")
    @classmethod
    def _lower_names(cls, v: list[str]) -> list[str]:
        return [str(x).strip().lower() for x in v if str(x).strip()]


def load_column_candidates(path: Path | None) -> ColumnCandidates:
    """
    Load candidate lists from YAML (keys as in `ColumnCandidates`); missing keys keep defaults.
    """
    if path is None:
        return ColumnCandidates()
    raw = Path(path).read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid column candidates yaml root: {path}")
    return ColumnCandidates.model_validate(data)
