import json
import sys
from pathlib import Path

import duckdb
import pytest

# Ensure `backend/` is on sys.path so tests can import local modules
# like `engine.*`, `viewer.*`, and `main`.
BACKEND_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_ROOT))


def _square(x: float, y: float, d: float = 0.01) -> str:
    ring = [[x, y], [x + d, y], [x + d, y + d], [x, y + d], [x, y]]
    return json.dumps({"type": "Polygon", "coordinates": [ring]})


# (geometry text or None, class or None), in file order.
CLASSIFIED_ROWS: list[tuple[str | None, int | None]] = [
    (_square(-74.0, 40.7), 3),
    (_square(-73.9, 40.7), 7),
    (_square(-73.8, 40.7), None),
    (None, 5),
    (_square(-73.7, 40.7), 12),
    (_square(-73.6, 40.7), 5),
]

# Offline stand-ins for the spatial extension: the test dataset stores GeoJSON text in a
# BLOB column, so "parsing WKB" is a decode and "formatting GeoJSON" is the identity.
SPATIAL_STUB_MACROS = [
    "CREATE OR REPLACE MACRO st_geomfromwkb(b) AS decode(b)",
    "CREATE OR REPLACE MACRO st_asgeojson(g) AS g",
]


def write_classified_parquet(
    path: Path,
    rows: list[tuple[str | None, int | None]],
    *,
    geom_col: str = "geom",
    class_col: str = "class_id",
) -> Path:
    conn = duckdb.connect(database=":memory:")
    try:
        conn.execute(
            f'CREATE TABLE src (id INTEGER, "{geom_col}" BLOB, "{class_col}" INTEGER)'
        )
        for i, (geom, cls) in enumerate(rows):
            if geom is None:
                conn.execute("INSERT INTO src VALUES (?, NULL, ?)", [i, cls])
            else:
                conn.execute("INSERT INTO src VALUES (?, encode(?), ?)", [i, geom, cls])
        conn.execute(
            f"COPY (SELECT * FROM src ORDER BY id) TO '{path}' (FORMAT PARQUET)"
        )
    finally:
        conn.close()
    return path


@pytest.fixture
def classified_parquet(tmp_path) -> Path:
    return write_classified_parquet(tmp_path / "classified.parquet", CLASSIFIED_ROWS)


@pytest.fixture
def spatial_stubs() -> list[str]:
    return list(SPATIAL_STUB_MACROS)


@pytest.fixture
def classified_rows() -> list[tuple[str | None, int | None]]:
    return list(CLASSIFIED_ROWS)


@pytest.fixture
def parquet_writer():
    return write_classified_parquet
