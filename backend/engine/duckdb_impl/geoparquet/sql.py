from __future__ import annotations

from engine.duckdb_common import quote_ident
from engine.types import ColumnRoles, FilterRange

GEOJSON_COLUMN = "geojson"
ATTRIBUTE_COLUMN = "class_val"


def is_wkb_column(name: str, type_: str) -> bool:
    """
    Binary WKB when the declared type is a blob or the column name says so.

    Type metadata alone can't tell WKB blobs from natively castable geometry.
    """
    return "BLOB" in (type_ or "").upper() or "wkb" in (name or "").lower()


def geometry_encoding(roles: ColumnRoles) -> str:
    return "wkb" if is_wkb_column(roles.geometry_name, roles.geometry_type) else "cast"


def geometry_expr(roles: ColumnRoles) -> str:
    col = quote_ident(roles.geometry_name)
    if geometry_encoding(roles) == "wkb":
        return f"ST_GeomFromWKB({col})"
    return f"TRY_CAST({col} AS GEOMETRY)"


def attribute_expr(roles: ColumnRoles) -> str:
    # TRY_CAST: values that can't be cast become NULL (and are then always kept).
    return f"TRY_CAST({quote_ident(roles.attribute_name)} AS INTEGER)"


def build_query(roles: ColumnRoles, frange: FilterRange, *, view_name: str = "gp") -> str:
    """
    Select GeoJSON text + integer attribute, keeping rows whose attribute is NULL or
    within [min, max] (inclusive).
    """
    lo = int(frange.min)
    hi = int(frange.max)
    return f"""
        WITH base AS (
            SELECT ST_AsGeoJSON({geometry_expr(roles)}) AS {GEOJSON_COLUMN},
                   {attribute_expr(roles)} AS {ATTRIBUTE_COLUMN}
              FROM {quote_ident(view_name)}
        )
        SELECT {GEOJSON_COLUMN}, {ATTRIBUTE_COLUMN}
          FROM base
         WHERE {GEOJSON_COLUMN} IS NOT NULL
           AND ({ATTRIBUTE_COLUMN} IS NULL OR {ATTRIBUTE_COLUMN} BETWEEN {lo} AND {hi})
        """
