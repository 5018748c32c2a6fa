"""
main.py – FastAPI API for the travel carbon footprint engine.

Start:
    cd /path/to/repo
    uvicorn footprint_api.main:app --reload --port 8000

The caller's identity is supplied by the authentication layer in front of
this service as the ``X-User-Id`` header.  Blocking database work runs in
worker threads, one short-lived connection per request.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable

from fastapi import Body, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from footprint.aggregates import redrive_pending_aggregates
from footprint.config import get_config
from footprint.constants import MAX_REDRIVE_BATCH_SIZE
from footprint.db import check_connection, with_connection
from footprint.emission_factors import load_active_table
from footprint.errors import ConfigUnavailable, InvalidInput, PersistenceFailure
from footprint.leaderboard import reconcile_leaderboard
from footprint.scheduler import start_background_jobs, stop_background_jobs
from footprint.service import (
    get_footprint_summary,
    get_footprints,
    get_leaderboard,
    log_activity,
)
from footprint.validators import validate_limit

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    cfg = get_config()
    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s  %(levelname)-8s  %(message)s",
        datefmt="%H:%M:%S",
    )
    app.state.config = cfg
    tasks = start_background_jobs(cfg) if cfg.enable_scheduler else []
    try:
        yield
    finally:
        await stop_background_jobs(tasks)


app = FastAPI(
    title="Travel Carbon Footprint API",
    version="1.0.0",
    description="Activity logging, daily carbon footprints, and the rewards leaderboard.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _require_user(x_user_id: str | None) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="You must be logged in.")
    return x_user_id


async def _run(fn: Callable[..., Any], *args, **kwargs) -> Any:
    """Run fn(conn, *args) in a thread on its own connection, mapping engine errors."""
    url = app.state.config.database_url
    try:
        return await asyncio.to_thread(
            with_connection, url, lambda conn: fn(conn, *args, **kwargs)
        )
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ConfigUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except PersistenceFailure as exc:
        logger.error("Activity not saved: %s", exc)
        raise HTTPException(status_code=500, detail="Could not save activity.") from exc
    except Exception as exc:
        logger.exception("Unhandled error in %s", getattr(fn, "__name__", fn))
        raise HTTPException(status_code=500, detail="Internal server error.") from exc


@app.post("/api/activities", summary="Log an activity and calculate its footprint")
async def api_log_activity(
    body: dict = Body(...),
    x_user_id: str | None = Header(None),
):
    """
    Body: { date, activityType, details, tripId? }.
    Returns { success, activityId, carbonFootprint, factorVersion, aggregated }.
    """
    user_id = _require_user(x_user_id)
    result = await _run(log_activity, user_id, body)
    return result.model_dump(by_alias=True)


@app.get("/api/footprints", summary="Daily footprints for a date range")
async def api_footprints(
    start_date: str | None = None,
    end_date: str | None = None,
    x_user_id: str | None = Header(None),
):
    """Returns { footprints: { "YYYY-MM-DD": kg CO₂e } }; days without activity are absent."""
    user_id = _require_user(x_user_id)
    footprints = await _run(get_footprints, user_id, start_date, end_date)
    return {"footprints": footprints}


@app.get("/api/footprints/summary", summary="Footprints with total, average and calendar levels")
async def api_footprint_summary(
    start_date: str | None = None,
    end_date: str | None = None,
    x_user_id: str | None = Header(None),
):
    """Defaults to the last 7 days when no range is given."""
    user_id = _require_user(x_user_id)
    return await _run(get_footprint_summary, user_id, start_date, end_date)


@app.get("/api/leaderboard", summary="Top users by reward points and the caller's rank")
async def api_leaderboard(
    limit: int | None = None,
    x_user_id: str | None = Header(None),
):
    user_id = _require_user(x_user_id)
    result = await _run(get_leaderboard, user_id, limit)
    return result.model_dump(by_alias=True)


@app.post("/api/leaderboard/refresh", summary="Reconcile the leaderboard projection now")
async def api_leaderboard_refresh():
    written = await _run(reconcile_leaderboard)
    return {"status": "ok", "entriesWritten": written}


@app.post("/api/activities/redrive", summary="Apply aggregates of pending activities now")
async def api_redrive(limit: int | None = None):
    try:
        size = validate_limit(
            limit,
            default=app.state.config.redrive_batch_size,
            maximum=MAX_REDRIVE_BATCH_SIZE,
        )
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    summary = await _run(redrive_pending_aggregates, limit=size)
    return {
        "pending": summary.pending,
        "applied": summary.applied,
        "skipped": summary.skipped,
        "failed": summary.failed,
    }


@app.get("/api/emission-factors", summary="Active emission factor table")
async def api_emission_factors():
    table = await _run(load_active_table)
    return table.to_dict()


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/health/db", summary="Database readiness")
async def health_db():
    ok, err = await asyncio.to_thread(check_connection, app.state.config.database_url)
    if not ok:
        logger.error("Database health check failed: %s", err)
        raise HTTPException(status_code=503, detail="Database unavailable.")
    return {"status": "ok", "database": "ok"}
