"""
backend/matchpick/main.py

Purpose:
    FastAPI application bootstrap, middleware/router wiring, exception
    mapping and the analysis scheduler lifecycle.

Dependencies:
    - matchpick.database
    - matchpick.workers.analysis_scheduler
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from matchpick.config import settings
import matchpick.database as _db
from matchpick.database import connect_db, close_db
from matchpick.errors import OracleConfigError, OracleError, UpstreamError
from matchpick.middleware.logging import StructuredLoggingMiddleware, setup_logging

logger = logging.getLogger("matchpick")
scheduler = AsyncIOScheduler()
_startup_task: asyncio.Task | None = None


def _build_job_specs() -> list[dict]:
    from matchpick.workers.analysis_scheduler import (
        run_prematch_window,
        run_today,
        run_tomorrow_morning,
        sweep_missing_picks,
    )
    return [
        {"id": "analysis_midnight", "func": run_today, "args": ["midnight"],
         "trigger": "cron", "trigger_kwargs": {"hour": 0, "minute": 0}},
        {"id": "analysis_every_six_hours", "func": run_today, "args": ["every_six_hours"],
         "trigger": "cron", "trigger_kwargs": {"hour": "*/6", "minute": 0}},
        {"id": "analysis_tomorrow_morning", "func": run_tomorrow_morning, "args": [],
         "trigger": "cron", "trigger_kwargs": {"hour": 18, "minute": 0}},
        {"id": "analysis_prematch", "func": run_prematch_window, "args": [],
         "trigger": "cron", "trigger_kwargs": {"minute": f"*/{settings.ANALYSIS_PREMATCH_TICK_MINUTES}"}},
        {"id": "analysis_sweep", "func": sweep_missing_picks, "args": [],
         "trigger": "cron", "trigger_kwargs": {"minute": f"*/{settings.ANALYSIS_SWEEP_INTERVAL_MINUTES}"}},
    ]


def _register_jobs() -> int:
    added = 0
    for spec in _build_job_specs():
        scheduler.add_job(
            spec["func"],
            spec["trigger"],
            args=spec["args"],
            id=spec["id"],
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            timezone=settings.analysis_tz,
            **spec["trigger_kwargs"],
        )
        added += 1
    return added


async def _startup_run() -> None:
    from matchpick.workers.analysis_scheduler import run_today, run_tomorrow_morning

    await asyncio.sleep(5)
    try:
        await run_today("startup")
        await run_tomorrow_morning()
    except Exception:
        logger.exception("Startup analysis run failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _startup_task
    setup_logging()
    await connect_db()

    if settings.ANALYSIS_SCHEDULER_ENABLED:
        registered = _register_jobs()
        scheduler.start()
        logger.info("Analysis scheduler started with %d jobs (tz=%s)", registered, settings.ANALYSIS_TIMEZONE)
        if settings.ANALYSIS_STARTUP_RUN:
            _startup_task = asyncio.create_task(_startup_run())
    else:
        logger.info("Analysis scheduler disabled via config")

    yield

    if _startup_task and not _startup_task.done():
        _startup_task.cancel()
    if scheduler.running:
        scheduler.shutdown(wait=False)

    from matchpick.providers.gemini import gemini_oracle
    from matchpick.providers.sports_data import sports_data_provider
    await sports_data_provider.aclose()
    await gemini_oracle.aclose()
    await close_db()


app = FastAPI(
    title="Matchpick",
    description="Odds-aware primary-pick recommendations for sports matches",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

# Structured logging
app.add_middleware(StructuredLoggingMiddleware)

# Routers
from matchpick.routers.analysis import router as analysis_router
from matchpick.routers.games import router as games_router

app.include_router(analysis_router)
app.include_router(games_router)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return clean validation errors without leaking internal field paths."""
    errors = []
    for err in exc.errors():
        loc = err.get("loc", ())
        field = ".".join(str(l) for l in loc[1:]) if len(loc) > 1 else str(loc[-1]) if loc else "unknown"
        errors.append({"field": field, "message": err.get("msg", "Invalid value.")})
    return JSONResponse(status_code=422, content={"detail": "Validation error.", "errors": errors})


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError):
    logger.error("Upstream failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": "Sports data provider unavailable."})


@app.exception_handler(OracleConfigError)
async def oracle_config_handler(request: Request, exc: OracleConfigError):
    logger.error("Oracle not configured: %s", exc)
    return JSONResponse(status_code=503, content={"detail": "Analysis oracle is not configured."})


@app.exception_handler(OracleError)
async def oracle_error_handler(request: Request, exc: OracleError):
    logger.error("Oracle failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Analysis oracle unavailable."})


@app.exception_handler(ServerSelectionTimeoutError)
async def db_timeout_handler(request: Request, exc: ServerSelectionTimeoutError):
    logger.error("Database timeout: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(ConnectionFailure)
async def db_connection_handler(request: Request, exc: ConnectionFailure):
    logger.error("Database connection failure: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all: log the real error, return a safe generic message."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.get("/health")
async def health():
    """Liveness plus DB ping; degraded when Mongo does not answer."""
    try:
        result = await _db.db.command("ping")
        db_ok = result.get("ok") == 1.0
    except Exception:
        db_ok = False
    return {
        "status": "ok" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
        "scheduler": scheduler.running,
    }


@app.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
