from __future__ import annotations

import os


def duckdb_threads() -> int:
    raw = (os.getenv("GPV_DUCKDB_THREADS") or "").strip()
    if raw:
        try:
            return max(1, int(raw))
        except Exception:
            pass
    return max(1, int(os.cpu_count() or 1))


def quote_ident(name: str) -> str:
    """
    Double-quote an identifier so reserved words (e.g. `class`) stay usable.

    Identifiers come from the engine's own metadata, so only embedded quotes need doubling.
    """
    return '"' + str(name).replace('"', '""') + '"'


def sql_string(value: str) -> str:
    return "'" + str(value).replace("'", "''") + "'"
