from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from engine.bootstrap import AsyncEngine
from engine.duckdb_impl.geoparquet.config import ColumnCandidates
from engine.duckdb_impl.geoparquet.decode import materialize
from engine.duckdb_impl.geoparquet.discover import (
    DEFAULT_EXTENSIONS,
    discover_schema,
    resolve_roles,
)
from engine.duckdb_impl.geoparquet.sql import build_query, geometry_encoding
from engine.duckdb_impl.geoparquet.stats import base_stats
from engine.errors import RunSuperseded
from engine.types import FilterRange, PipelineResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineOptions:
    dataset_url: str
    view_name: str = "gp"
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    http_metadata_cache: bool = True
    skip_invalid_geometry: bool = True
    columns: ColumnCandidates = field(default_factory=ColumnCandidates)


class GeoParquetPipeline:
    """
    connect -> register view -> discover -> build query -> execute -> materialize -> close.

    One connection per run, released on every exit path. Nothing is cached between
    runs; each call rediscovers the schema.
    """

    def __init__(self, options: PipelineOptions):
        self.options = options

    async def __call__(
        self,
        engine: AsyncEngine,
        frange: FilterRange,
        *,
        run_id: int = 0,
        superseded: Callable[[], bool] | None = None,
    ) -> PipelineResult:
        opts = self.options

        def checkpoint(step: str) -> None:
            if superseded is not None and superseded():
                raise RunSuperseded(f"run {run_id} superseded before {step}")

        t0 = time.perf_counter()
        logger.info(
            "Run %d: querying %s for class in [%d, %d]",
            run_id,
            opts.dataset_url,
            frange.min,
            frange.max,
        )
        conn = await engine.connect()
        async with conn:
            schema = await discover_schema(
                conn,
                opts.dataset_url,
                view_name=opts.view_name,
                extensions=opts.extensions,
                http_metadata_cache=opts.http_metadata_cache,
            )
            t_discover_ms = (time.perf_counter() - t0) * 1000.0
            roles = resolve_roles(schema, opts.columns)
            sql = build_query(roles, frange, view_name=opts.view_name)
            logger.debug("Run %d SQL: %s", run_id, sql)

            checkpoint("query")
            mat = await materialize(
                conn, sql, skip_invalid=opts.skip_invalid_geometry
            )

        n = len(mat.collection["features"])
        stats = base_stats(
            run_id=run_id,
            n=n,
            skipped=mat.skipped,
            discover_ms=t_discover_ms,
            duckdb_ms=mat.duckdb_ms,
            decode_ms=mat.decode_ms,
            total_ms=(time.perf_counter() - t0) * 1000.0,
            geometry_column=roles.geometry_name,
            attribute_column=roles.attribute_name,
            geometry_encoding=geometry_encoding(roles),
        )
        logger.info(
            "Run %d: %d features (%d skipped) in %.1f ms",
            run_id,
            n,
            mat.skipped,
            stats["totalMs"],
        )
        return PipelineResult(collection=mat.collection, stats=stats)
