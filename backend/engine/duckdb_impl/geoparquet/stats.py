from __future__ import annotations

from typing import Any


def base_stats(
    *,
    run_id: int,
    n: int,
    skipped: int,
    discover_ms: float,
    duckdb_ms: float,
    decode_ms: float,
    total_ms: float,
    geometry_column: str | None = None,
    attribute_column: str | None = None,
    geometry_encoding: str | None = None,
) -> dict[str, Any]:
    out: dict[str, Any] = {
        "run": int(run_id),
        "source": "geoparquet",
        "n": int(n),
        "skipped": int(skipped),
        "discoverMs": round(float(discover_ms), 2),
        "duckdbMs": round(float(duckdb_ms), 2),
        "decodeMs": round(float(decode_ms), 2),
        "totalMs": round(float(total_ms), 2),
    }
    if geometry_column:
        out["geometryColumn"] = geometry_column
    if attribute_column:
        out["attributeColumn"] = attribute_column
    if geometry_encoding:
        out["geometryEncoding"] = geometry_encoding
    return out
