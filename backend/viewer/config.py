from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from engine.duckdb_common import duckdb_threads
from engine.duckdb_impl.geoparquet.config import ColumnCandidates, load_column_candidates
from engine.duckdb_impl.geoparquet.discover import DEFAULT_EXTENSIONS
from engine.duckdb_impl.geoparquet.pipeline import PipelineOptions
from engine.types import FilterRange

DEFAULT_DATASET_URL = "https://storage.googleapis.com/coplac/classified_polygons.geoparquet"

# Bounds of the numeric filter inputs.
CLASS_MIN = 1
CLASS_MAX = 25


def _env_str(name: str, default: str | None) -> str | None:
    raw = (os.getenv(name) or "").strip()
    return raw or default


def _env_int(name: str, default: int, *, lo: int, hi: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if raw:
        try:
            return max(lo, min(hi, int(raw)))
        except Exception:
            pass
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw not in {"0", "false", "no", "off"}


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(x.strip() for x in raw.split(",") if x.strip())


@dataclass(frozen=True)
class ViewerSettings:
    dataset_url: str = DEFAULT_DATASET_URL
    view_name: str = "gp"
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    http_metadata_cache: bool = True
    duckdb_path: str = ":memory:"
    duckdb_threads: int | None = None
    # Basemap access token; only the presentation layer reads it.
    mapbox_token: str | None = None
    initial_min: int = CLASS_MIN
    initial_max: int = CLASS_MAX
    skip_invalid_geometry: bool = True
    columns: ColumnCandidates = field(default_factory=ColumnCandidates)

    @classmethod
    def from_env(cls) -> "ViewerSettings":
        columns_path = _env_str("GPV_COLUMNS_CONFIG", None)
        return cls(
            dataset_url=_env_str("GPV_DATASET_URL", DEFAULT_DATASET_URL)
            or DEFAULT_DATASET_URL,
            view_name=_env_str("GPV_VIEW_NAME", "gp") or "gp",
            extensions=_env_list("GPV_EXTENSIONS", DEFAULT_EXTENSIONS),
            http_metadata_cache=_env_bool("GPV_HTTP_METADATA_CACHE", True),
            duckdb_path=_env_str("GPV_DUCKDB_PATH", ":memory:") or ":memory:",
            duckdb_threads=duckdb_threads(),
            mapbox_token=_env_str("GPV_MAPBOX_TOKEN", None),
            initial_min=_env_int("GPV_MIN_CLASS", CLASS_MIN, lo=CLASS_MIN, hi=CLASS_MAX),
            initial_max=_env_int("GPV_MAX_CLASS", CLASS_MAX, lo=CLASS_MIN, hi=CLASS_MAX),
            skip_invalid_geometry=_env_bool("GPV_SKIP_INVALID_GEOMETRY", True),
            columns=load_column_candidates(Path(columns_path) if columns_path else None),
        )

    def initial_range(self) -> FilterRange:
        return FilterRange(min=int(self.initial_min), max=int(self.initial_max))

    def pipeline_options(self) -> PipelineOptions:
        return PipelineOptions(
            dataset_url=self.dataset_url,
            view_name=self.view_name,
            extensions=tuple(self.extensions),
            http_metadata_cache=self.http_metadata_cache,
            skip_invalid_geometry=self.skip_invalid_geometry,
            columns=self.columns,
        )
