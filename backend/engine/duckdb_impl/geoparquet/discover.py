from __future__ import annotations

import logging
from typing import Sequence

import duckdb

from engine.bootstrap import AsyncConnection
from engine.duckdb_common import quote_ident, sql_string
from engine.duckdb_impl.geoparquet.config import ColumnCandidates
from engine.errors import SchemaDiscoveryError
from engine.types import ColumnDescriptor, ColumnRoles, DiscoveredSchema

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS: tuple[str, ...] = ("httpfs", "spatial")

COLUMNS_SQL = """
SELECT column_name, data_type
  FROM information_schema.columns
 WHERE table_name = ?
 ORDER BY ordinal_position
"""


async def ensure_extensions(conn: AsyncConnection, extensions: Sequence[str]) -> None:
    # INSTALL/LOAD are no-ops once done, so this runs on every pipeline run.
    for ext in extensions:
        await conn.query(f"INSTALL {ext};")
        await conn.query(f"LOAD {ext};")


async def enable_http_metadata_cache(conn: AsyncConnection) -> None:
    try:
        await conn.query("SET enable_http_metadata_cache=true;")
    except duckdb.Error:
        logger.debug("enable_http_metadata_cache not available in this DuckDB version")


async def register_view(conn: AsyncConnection, dataset_url: str, *, view_name: str) -> None:
    """
    (Re)register the dataset as a connection-local view.

    OR REPLACE keeps repeated runs from accumulating state; TEMP keeps overlapping runs
    on separate connections from contending for the same catalog entry.
    """
    await conn.query(
        f"CREATE OR REPLACE TEMP VIEW {quote_ident(view_name)} AS "
        f"SELECT * FROM read_parquet({sql_string(dataset_url)});"
    )


async def discover_schema(
    conn: AsyncConnection,
    dataset_url: str,
    *,
    view_name: str = "gp",
    extensions: Sequence[str] = DEFAULT_EXTENSIONS,
    http_metadata_cache: bool = True,
) -> DiscoveredSchema:
    """
    Register `dataset_url` as `view_name` and return its columns (names lower-cased,
    types upper-cased) in declaration order.
    """
    try:
        await ensure_extensions(conn, extensions)
        if http_metadata_cache:
            await enable_http_metadata_cache(conn)
        await register_view(conn, dataset_url, view_name=view_name)
        res = await conn.query(COLUMNS_SQL, [view_name])
    except duckdb.Error as e:
        raise SchemaDiscoveryError(f"{dataset_url}: {e}") from e

    names = res.column("column_name")
    types = res.column("data_type")
    schema = tuple(
        ColumnDescriptor.normalized(n, types[i] if i < len(types) else "")
        for i, n in enumerate(names)
    )
    if not schema:
        raise SchemaDiscoveryError(f"{dataset_url}: view {view_name!r} has no columns")
    logger.debug(
        "Discovered %d columns: %s", len(schema), [f"{c.name}:{c.type}" for c in schema]
    )
    return schema


def find_column(schema: DiscoveredSchema, candidates: Sequence[str]) -> ColumnDescriptor | None:
    """
    First candidate (in candidate order) present in the schema.
    """
    by_name: dict[str, ColumnDescriptor] = {}
    for col in schema:
        by_name.setdefault(col.name, col)
    for cand in candidates:
        col = by_name.get(str(cand).lower())
        if col is not None:
            return col
    return None


def resolve_roles(
    schema: DiscoveredSchema, candidates: ColumnCandidates | None = None
) -> ColumnRoles:
    cands = candidates or ColumnCandidates()
    roles = ColumnRoles(
        geometry=find_column(schema, cands.geometry),
        attribute=find_column(schema, cands.attribute),
        geometry_default=cands.geometryDefault,
        attribute_default=cands.attributeDefault,
    )
    if roles.geometry is None:
        logger.warning(
            "No geometry column matched %s; falling back to %r",
            cands.geometry,
            roles.geometry_name,
        )
    if roles.attribute is None:
        logger.warning(
            "No attribute column matched %s; falling back to %r",
            cands.attribute,
            roles.attribute_name,
        )
    return roles
