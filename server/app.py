"""FastAPI application -- routes for the drill scheduler."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from drill.errors import DrillError
from drill.storage import ItemStore, MatrixStore
from server.__version__ import __version__
from server.config import Settings
from server.dependencies import get_item_store, get_matrix_store, get_settings
from server.schemas import (
    ClassifyRequest,
    ClassifyResponse,
    DueItemsResponse,
    MatrixResponse,
    ReviewRequest,
    ReviewResponse,
    ScheduleRequest,
    ScheduleResponse,
    SessionHistoryResponse,
    StatsResponse,
)
from server.services import drill_service

logger = logging.getLogger("server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan: no heavy work; stores are opened per request."""
    ts = datetime.utcnow().isoformat() + "Z"
    logger.info("[%s] Startup: drill API %s", ts, __version__)
    yield
    ts_end = datetime.utcnow().isoformat() + "Z"
    logger.info("[%s] Shutdown: complete", ts_end)


app = FastAPI(title="Drill", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---- Health ----

@app.get("/health")
def health():
    return {"status": "ok", "version": __version__}


# ---- Pure scheduling ----

@app.post("/drill/schedule", response_model=ScheduleResponse)
def schedule(body: ScheduleRequest, settings: Settings = Depends(get_settings)):
    try:
        return drill_service.schedule(
            settings.drill,
            body.algorithm,
            body.state.model_dump() if body.state else None,
            body.quality,
            delta_days=body.delta_days,
            matrix_data=body.matrix,
        )
    except DrillError as e:
        raise HTTPException(status_code=422, detail=str(e))


@app.post("/drill/classify", response_model=ClassifyResponse)
def classify(body: ClassifyRequest, settings: Settings = Depends(get_settings)):
    try:
        return drill_service.classify_state(
            settings.drill,
            body.state.model_dump() if body.state else None,
            today=body.today,
            cram_mode=body.cram_mode,
            now=body.now,
        )
    except DrillError as e:
        raise HTTPException(status_code=422, detail=str(e))


# ---- Stored items ----

@app.get("/drill/due", response_model=DueItemsResponse)
def due_items(
    settings: Settings = Depends(get_settings),
    store: ItemStore = Depends(get_item_store),
):
    return drill_service.get_due_items(store, settings.drill)


@app.post("/drill/review", response_model=ReviewResponse)
def review(
    body: ReviewRequest,
    settings: Settings = Depends(get_settings),
    store: ItemStore = Depends(get_item_store),
    matrix_store: MatrixStore = Depends(get_matrix_store),
):
    try:
        return drill_service.review_item(
            store, matrix_store, settings.drill, body.item_id, body.quality,
        )
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Item not found: {body.item_id}")
    except DrillError as e:
        raise HTTPException(status_code=422, detail=str(e))


@app.get("/drill/stats", response_model=StatsResponse)
def stats(
    settings: Settings = Depends(get_settings),
    store: ItemStore = Depends(get_item_store),
):
    return drill_service.get_stats(store, settings.drill)


@app.get("/drill/matrix", response_model=MatrixResponse)
def matrix(matrix_store: MatrixStore = Depends(get_matrix_store)):
    return drill_service.get_matrix(matrix_store)


@app.get("/drill/sessions", response_model=SessionHistoryResponse)
def sessions(
    limit: int = 20,
    settings: Settings = Depends(get_settings),
):
    return drill_service.get_session_history(settings.session_log_path, limit=limit)
