from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from engine.bootstrap import AsyncEngine, initialize
from engine.duckdb_impl.geoparquet.pipeline import GeoParquetPipeline
from engine.errors import EngineBootstrapError, RunSuperseded, ViewerError
from engine.types import FeatureCollection, FilterRange, Pipeline
from viewer.config import ViewerSettings

logger = logging.getLogger(__name__)

STATUS_INITIALIZING = "Initializing..."
STATUS_LOADING_ENGINE = "Loading DuckDB..."
STATUS_ENGINE_READY = "Engine ready"
STATUS_QUERYING = "Querying parquet via HTTP..."

Bootstrap = Callable[[ViewerSettings], Awaitable[AsyncEngine]]


async def _default_bootstrap(settings: ViewerSettings) -> AsyncEngine:
    return await initialize(database=settings.duckdb_path, threads=settings.duckdb_threads)


class ViewerController:
    """
    Owns the viewer state and re-runs the pipeline whenever the engine handle or the
    filter range changes.

    Every run gets a sequence number; only the run holding the latest number may
    publish its collection or its failure. Older runs are stopped at the next step
    boundary if possible and discarded otherwise.
    """

    def __init__(
        self,
        *,
        settings: ViewerSettings,
        pipeline: Pipeline | None = None,
        bootstrap: Bootstrap | None = None,
    ):
        self.settings = settings
        self._pipeline: Pipeline = pipeline or GeoParquetPipeline(
            settings.pipeline_options()
        )
        self._bootstrap: Bootstrap = bootstrap or _default_bootstrap

        self.engine: AsyncEngine | None = None
        self.filter_range: FilterRange = settings.initial_range()
        self.collection: FeatureCollection | None = None
        self.status: str = STATUS_INITIALIZING
        self.last_stats: dict[str, Any] | None = None

        self._seq = 0
        self._tasks: set[asyncio.Task] = set()

    @property
    def ready(self) -> bool:
        return self.engine is not None

    @property
    def latest_run(self) -> int:
        return self._seq

    async def start(self) -> None:
        """
        Bootstrap the engine once; on success the first run is triggered immediately.
        """
        if self.engine is not None:
            return
        self.status = STATUS_LOADING_ENGINE
        try:
            engine = await self._bootstrap(self.settings)
        except EngineBootstrapError as e:
            logger.error("Engine bootstrap failed: %s", e)
            self.status = e.status()
            return
        except Exception as e:
            logger.exception("Engine bootstrap failed")
            self.status = EngineBootstrapError(f"{type(e).__name__}: {e}").status()
            return
        self.set_engine(engine)

    def set_engine(self, engine: AsyncEngine) -> asyncio.Task:
        self.engine = engine
        self.status = STATUS_ENGINE_READY
        return self._trigger()

    def set_filter(self, min_value: int, max_value: int) -> asyncio.Task | None:
        """
        Update the filter range; triggers a run when the engine is ready.
        """
        frange = FilterRange(min=int(min_value), max=int(max_value))
        self.filter_range = frange
        if self.engine is None:
            return None
        return self._trigger()

    def _is_current(self, run_id: int) -> bool:
        return run_id == self._seq

    def _trigger(self) -> asyncio.Task:
        self._seq += 1
        run_id = self._seq
        engine = self.engine
        frange = self.filter_range
        self.status = STATUS_QUERYING
        task = asyncio.get_running_loop().create_task(
            self._run(run_id, engine, frange), name=f"pipeline-run-{run_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, run_id: int, engine: AsyncEngine | None, frange: FilterRange) -> None:
        try:
            result = await self._pipeline(
                engine,
                frange,
                run_id=run_id,
                superseded=lambda: not self._is_current(run_id),
            )
        except RunSuperseded:
            logger.debug("Run %d stopped: superseded by run %d", run_id, self._seq)
            return
        except ViewerError as e:
            if not self._is_current(run_id):
                logger.debug("Run %d failed after being superseded: %s", run_id, e)
                return
            logger.error("Run %d failed: %s", run_id, e.status())
            self.status = e.status()
            return
        except Exception as e:
            if not self._is_current(run_id):
                logger.debug("Run %d failed after being superseded: %r", run_id, e)
                return
            logger.exception("Run %d failed", run_id)
            self.status = f"Unexpected error: {type(e).__name__}: {e}"
            return

        if not self._is_current(run_id):
            logger.debug("Discarding stale result of run %d (latest %d)", run_id, self._seq)
            return
        self.collection = result.collection
        self.last_stats = result.stats
        self.status = f"Loaded {result.n} features"

    async def wait_idle(self) -> None:
        """
        Wait until no run is in flight (runs triggered meanwhile included).
        """
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.wait_idle()
        if self.engine is not None:
            self.engine.close()
