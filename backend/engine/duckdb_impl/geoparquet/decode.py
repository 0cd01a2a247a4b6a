from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any

import duckdb
from pydantic import ValidationError
from shapely.errors import ShapelyError
from shapely.geometry import shape

from engine.bootstrap import AsyncConnection, QueryResult
from engine.duckdb_impl.geoparquet.sql import ATTRIBUTE_COLUMN, GEOJSON_COLUMN
from engine.errors import GeometryParseError, MaterializationError, QueryExecutionError
from engine.types import FeatureCollection, FeatureRow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Materialized:
    collection: FeatureCollection
    skipped: int
    duckdb_ms: float
    decode_ms: float


def feature_rows(result: QueryResult) -> list[FeatureRow]:
    """
    Pull the two result columns and validate every row against `FeatureRow`.

    Any shape mismatch (missing column, wrong cell type) is a materialization failure,
    never a silent coercion.
    """
    try:
        geo = result.column(GEOJSON_COLUMN)
        attr = result.column(ATTRIBUTE_COLUMN)
    except KeyError as e:
        raise MaterializationError(str(e)) from e
    if len(geo) != len(attr):
        raise MaterializationError(
            f"Column length mismatch: {GEOJSON_COLUMN}={len(geo)} {ATTRIBUTE_COLUMN}={len(attr)}"
        )

    rows: list[FeatureRow] = []
    for i, (g, a) in enumerate(zip(geo, attr)):
        try:
            rows.append(FeatureRow(geojson_text=g, attribute_value=a))
        except ValidationError as e:
            err = e.errors()[0] if e.errors() else {}
            raise MaterializationError(
                f"row {i}: {'.'.join(str(x) for x in err.get('loc', ()))}: {err.get('msg', e)}"
            ) from e
    return rows


def parse_geometry(text: str) -> dict[str, Any]:
    """
    Parse a GeoJSON geometry string; the result must be a geometry shapely accepts.
    """
    try:
        obj = json.loads(text)
        if not isinstance(obj, dict):
            raise ValueError(f"expected a GeoJSON object, got {type(obj).__name__}")
        shape(obj)
    except (ValueError, TypeError, KeyError, AttributeError, ShapelyError) as e:
        raise GeometryParseError(f"{type(e).__name__}: {e}") from e
    return obj


def decode_feature_rows(
    rows: list[FeatureRow], *, skip_invalid: bool = True
) -> tuple[list[dict[str, Any]], int]:
    """
    Build GeoJSON features in row order.

    Rows with null/empty geometry text are dropped; null attributes are kept. A bad
    geometry cell is skipped (and counted) when `skip_invalid`, otherwise it aborts.
    """
    feats: list[dict[str, Any]] = []
    skipped = 0
    for i, row in enumerate(rows):
        if not row.geojson_text:
            continue
        try:
            geometry = parse_geometry(row.geojson_text)
        except GeometryParseError as e:
            if not skip_invalid:
                raise GeometryParseError(f"row {i}: {e}") from e
            skipped += 1
            logger.warning("Skipping row %d with unparseable geometry: %s", i, e)
            continue
        feats.append(
            {
                "type": "Feature",
                "geometry": geometry,
                "properties": {"class_val": row.attribute_value},
            }
        )
    return feats, skipped


async def materialize(
    conn: AsyncConnection, sql: str, *, skip_invalid: bool = True
) -> Materialized:
    t_db0 = time.perf_counter()
    try:
        result = await conn.query(sql)
    except duckdb.Error as e:
        raise QueryExecutionError(str(e)) from e
    t_db_ms = (time.perf_counter() - t_db0) * 1000.0

    t_dec0 = time.perf_counter()
    feats, skipped = decode_feature_rows(feature_rows(result), skip_invalid=skip_invalid)
    t_decode_ms = (time.perf_counter() - t_dec0) * 1000.0

    return Materialized(
        collection={"type": "FeatureCollection", "features": feats},
        skipped=skipped,
        duckdb_ms=t_db_ms,
        decode_ms=t_decode_ms,
    )
