import logging
import os
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from engine.types import empty_collection
from render.build_map import build_map_plot
from viewer.config import CLASS_MAX, CLASS_MIN, ViewerSettings
from viewer.controller import ViewerController


def setup_logging(level: str | None = None) -> None:
    name = (level or os.getenv("GPV_LOG_LEVEL") or "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )


def build_controller() -> ViewerController:
    return ViewerController(settings=ViewerSettings.from_env())


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    controller = build_controller()
    app.state.controller = controller
    await controller.start()
    try:
        yield
    finally:
        await controller.close()


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ApiFilter(BaseModel):
    # The two bounds are independent; min > max is valid and yields only unclassified rows.
    min: int = Field(ge=CLASS_MIN, le=CLASS_MAX)
    max: int = Field(ge=CLASS_MIN, le=CLASS_MAX)


def _controller(request: Request) -> ViewerController:
    return request.app.state.controller


def _status_payload(c: ViewerController) -> dict:
    features = (c.collection or {}).get("features") or []
    return {
        "status": c.status,
        "ready": c.ready,
        "filter": {"min": c.filter_range.min, "max": c.filter_range.max},
        "featureCount": len(features),
        "run": c.latest_run,
        "stats": c.last_stats,
    }


@app.get("/status")
def get_status(request: Request):
    return _status_payload(_controller(request))


@app.post("/filter")
async def set_filter(body: ApiFilter, request: Request):
    c = _controller(request)
    c.set_filter(body.min, body.max)
    return _status_payload(c)


@app.get("/features")
def get_features(request: Request):
    return _controller(request).collection or empty_collection()


@app.get("/plot")
def get_plot(request: Request):
    c = _controller(request)
    return build_map_plot(
        c.collection,
        frange=c.filter_range,
        mapbox_token=c.settings.mapbox_token,
        stats=c.last_stats,
    )
