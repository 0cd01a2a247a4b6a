from __future__ import annotations

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

import duckdb

from engine.duckdb_common import duckdb_threads
from engine.errors import EngineBootstrapError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class EngineBundle:
    """
    Runtime selection for the analytic engine on this host.
    """

    database: str
    threads: int
    version: str
    # Executor size bounds how many runs may have a statement in flight at once.
    max_workers: int = 4


def select_bundle(*, database: str | None = None, threads: int | None = None) -> EngineBundle:
    return EngineBundle(
        database=database or ":memory:",
        threads=int(threads) if threads else int(duckdb_threads()),
        version=str(getattr(duckdb, "__version__", "unknown")),
    )


@dataclass(frozen=True)
class QueryResult:
    """
    Columnar view over a fetched result set.
    """

    columns: tuple[str, ...]
    rows: list[tuple]

    def __len__(self) -> int:
        return len(self.rows)

    def column(self, name: str) -> list[Any]:
        try:
            i = self.columns.index(name)
        except ValueError:
            raise KeyError(f"Result has no column {name!r} (columns: {list(self.columns)})")
        return [r[i] for r in self.rows]


class AsyncConnection:
    """
    A scoped connection (DuckDB cursor) owned by a single pipeline run.

    Use as `async with await engine.connect() as conn:`; the cursor is closed on every
    exit path.
    """

    def __init__(self, engine: "AsyncEngine", cursor: duckdb.DuckDBPyConnection):
        self._engine = engine
        self._cursor = cursor
        self.closed = False

    async def query(self, sql: str, params: list[Any] | None = None) -> QueryResult:
        if self.closed:
            raise RuntimeError("Connection is closed")
        return await self._engine.run(self._execute, sql, params)

    def _execute(self, sql: str, params: list[Any] | None) -> QueryResult:
        if params:
            cur = self._cursor.execute(sql, params)
        else:
            cur = self._cursor.execute(sql)
        desc = cur.description
        if not desc:
            return QueryResult(columns=(), rows=[])
        return QueryResult(columns=tuple(str(d[0]) for d in desc), rows=cur.fetchall())

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self._engine.run(self._cursor.close)

    async def __aenter__(self) -> "AsyncConnection":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await self.close()
        except duckdb.Error:
            logger.warning("Failed to close engine connection", exc_info=True)


class AsyncEngine:
    """
    Process-wide handle to an initialized DuckDB database.

    All blocking engine calls run on a background executor so the event loop only
    suspends at engine round-trips. Connections are independent cursors on the same
    database and may be used by overlapping runs.
    """

    def __init__(
        self,
        *,
        bundle: EngineBundle,
        executor: ThreadPoolExecutor,
        db: duckdb.DuckDBPyConnection,
    ):
        self.bundle = bundle
        self._executor = executor
        self._db = db
        self.closed = False

    async def run(self, fn: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args))

    async def connect(self) -> AsyncConnection:
        if self.closed:
            raise RuntimeError("Engine is closed")
        cursor = await self.run(self._db.cursor)
        return AsyncConnection(self, cursor)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self._db.close()
        finally:
            self._executor.shutdown(wait=False)


async def initialize(
    *, database: str | None = None, threads: int | None = None
) -> AsyncEngine:
    """
    Select a bundle, start the background executor and instantiate the engine in it.

    Any failure is raised as `EngineBootstrapError`; no handle is returned in that case.
    """
    try:
        bundle = select_bundle(database=database, threads=threads)
        executor = ThreadPoolExecutor(
            max_workers=bundle.max_workers, thread_name_prefix="duckdb-engine"
        )
    except Exception as e:
        raise EngineBootstrapError(f"{type(e).__name__}: {e}") from e

    loop = asyncio.get_running_loop()
    try:
        db = await loop.run_in_executor(
            executor,
            functools.partial(
                duckdb.connect,
                database=bundle.database,
                read_only=False,
                config={"threads": int(bundle.threads)},
            ),
        )
    except Exception as e:
        executor.shutdown(wait=False)
        raise EngineBootstrapError(f"{type(e).__name__}: {e}") from e

    logger.info(
        "DuckDB %s ready: database=%s threads=%d",
        bundle.version,
        bundle.database,
        bundle.threads,
    )
    return AsyncEngine(bundle=bundle, executor=executor, db=db)
