from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, TypeAlias

from pydantic import BaseModel, ConfigDict

# GeoJSON FeatureCollection: {"type": "FeatureCollection", "features": [...]}
FeatureCollection: TypeAlias = dict[str, Any]


@dataclass(frozen=True)
class ColumnDescriptor:
    """
    One column of a discovered dataset.

    Names are stored lower-cased and declared types upper-cased so role matching
    and encoding detection never depend on the dataset's casing.
    """

    name: str
    type: str

    @classmethod
    def normalized(cls, name: Any, type_: Any) -> "ColumnDescriptor":
        return cls(name=str(name or "").lower(), type=str(type_ or "").upper())


DiscoveredSchema: TypeAlias = tuple[ColumnDescriptor, ...]


@dataclass(frozen=True)
class ColumnRoles:
    """
    Which dataset columns play the geometry and attribute roles.

    `geometry` / `attribute` are None when no candidate matched; the effective names
    then fall back to the configured defaults.
    """

    geometry: ColumnDescriptor | None
    attribute: ColumnDescriptor | None
    geometry_default: str = "geometry"
    attribute_default: str = "class"

    @property
    def geometry_name(self) -> str:
        return self.geometry.name if self.geometry is not None else self.geometry_default

    @property
    def geometry_type(self) -> str:
        return self.geometry.type if self.geometry is not None else ""

    @property
    def attribute_name(self) -> str:
        return (
            self.attribute.name if self.attribute is not None else self.attribute_default
        )


@dataclass(frozen=True)
class FilterRange:
    """
    Inclusive attribute range. `min > max` is allowed and matches no value.
    """

    min: int
    max: int

    def contains(self, value: int | None) -> bool:
        if value is None:
            return True
        return self.min <= int(value) <= self.max


class FeatureRow(BaseModel):
    """
    Typed shape of one result row, checked right after retrieval.
    """

    model_config = ConfigDict(strict=True, frozen=True)

    geojson_text: str | None
    attribute_value: int | None


@dataclass(frozen=True)
class PipelineResult:
    collection: FeatureCollection
    stats: dict[str, Any] = field(default_factory=dict)

    @property
    def n(self) -> int:
        return len(self.collection.get("features") or [])


class Pipeline(Protocol):
    """
    One pipeline run: discover -> build -> execute -> materialize.

    `superseded` is polled between steps; when it returns True the run stops with
    `RunSuperseded`.
    """

    async def __call__(
        self,
        engine: Any,
        frange: FilterRange,
        *,
        run_id: int = 0,
        superseded: Callable[[], bool] | None = None,
    ) -> PipelineResult: ...


def empty_collection() -> FeatureCollection:
    return {"type": "FeatureCollection", "features": []}
