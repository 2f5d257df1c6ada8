"""
main.py – FastAPI entry point
=============================

Exposes the flight scheduler's control surface and the cached-status read
accessor.  The scheduler's cron triggers are registered in the lifespan
handler and torn down on shutdown.

Admin routes (``/update``, ``/validate``, ``/test_connection``) require
``?token=`` matching ``ADMIN_TOKEN`` and are rate limited per client IP.
"""

from __future__ import annotations

# ─── Std-lib / third-party ────────────────────────────────────────────
import datetime as dt
import logging
import secrets
import sys
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, PlainTextResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

# ─── Project modules ──────────────────────────────────────────────────
from . import config
from .scheduler import build_scheduler
from .updater import check_connection, validate_flight

# ─── Logging ──────────────────────────────────────────────────────────
LOG = logging.getLogger("api")

# Service loggers write to stdout next to uvicorn's own lines
_handler = logging.StreamHandler(sys.stdout)
_handler.setFormatter(logging.Formatter("%(levelname)s:     %(name)s - %(message)s"))
for _name in (
    "api",
    "scheduler",
    "updater",
    "quota",
    "status_cache",
    "store",
    "itinerary",
    "aviationstack",
    "extapi",
    "event_service",
):
    _logger = logging.getLogger(_name)
    _logger.addHandler(_handler)
    _logger.setLevel(logging.INFO)

ADMIN_TOKEN = config.ADMIN_TOKEN
UTC = dt.timezone.utc

limiter = Limiter(key_func=get_remote_address)

#: Process-wide scheduler; its triggers only run between startup and shutdown
scheduler = build_scheduler()


def _require_admin(token: str) -> None:
    if not ADMIN_TOKEN or not secrets.compare_digest(token.strip(), ADMIN_TOKEN.strip()):
        raise HTTPException(status_code=403, detail="Forbidden")


# ---------------------------------------------------------------------
# Lifespan – register / tear down the cron triggers
# ---------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: N802 – FastAPI naming style
    try:
        scheduler.start()
    except Exception as exc:
        LOG.error("[init] could not start flight scheduler: %s", exc, exc_info=True)

    yield  # ⇢ application runs here

    scheduler.stop()


# ---------------------------------------------------------------------
# FastAPI instance
# ---------------------------------------------------------------------
app = FastAPI(title="flightwatch", lifespan=lifespan)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Return 429 when rate limit is exceeded."""
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded. Try again later."},
    )


# Health probe --------------------------------------------------------
@app.get("/healthz", response_class=PlainTextResponse)
async def healthz() -> PlainTextResponse:
    """Return HTTP 200 with body “ok” if the app is up."""
    return PlainTextResponse("ok", status_code=200)


# ---------------------------------------------------------------------
# Read accessors
# ---------------------------------------------------------------------
@app.get("/flights/tracked.json")
async def tracked_flights() -> JSONResponse:
    """Every flight currently in the working set, with its cached status."""
    flights = scheduler.get_tracked_flights()
    return JSONResponse(
        {
            "flights": jsonable_encoder(flights),
            "count": len(flights),
            "timestamp": dt.datetime.now(UTC).isoformat(),
        }
    )


@app.get("/flights/{flight_iata}/{date}.json")
async def cached_status(flight_iata: str, date: str) -> JSONResponse:
    """Last known status for one flight occurrence (404 if never fetched)."""
    entry = scheduler.get_cached_status(flight_iata.strip().upper(), date)
    if entry is None:
        raise HTTPException(status_code=404, detail="No cached data for this flight")
    return JSONResponse(jsonable_encoder(entry))


@app.get("/usage.json")
async def usage() -> dict[str, Any]:
    """Monthly AviationStack usage (calls, remaining, percent used)."""
    return scheduler.get_usage_stats()


@app.get("/schedule.json")
async def schedule() -> dict[str, Any]:
    """Trigger table with the next fire time of each trigger."""
    return {"running": scheduler.running, "triggers": scheduler.get_schedule()}


# ---------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------
@app.post("/update")
@limiter.limit("10/hour")
async def manual_update(request: Request, token: str = Query(...)) -> dict[str, Any]:
    """Run the daily selection right now (counts against the quota)."""
    _require_admin(token)
    summary = await scheduler.trigger_manual_update()
    return {"ok": summary["skipped_reason"] is None, **summary}


@app.post("/validate")
@limiter.limit("30/hour")
async def validate(
    request: Request,
    flight_iata: str = Query(..., min_length=2, max_length=8),
    date: str = Query(..., pattern=r"^\d{4}-\d{2}-\d{2}$"),
    token: str = Query(...),
) -> dict[str, Any]:
    """Validate a flight number/date with the provider, bypassing the limit."""
    _require_admin(token)
    result = await validate_flight(
        flight_iata.strip().upper(),
        date,
        scheduler.quota,
        scheduler.client,
        bypass_limit=True,
    )
    return jsonable_encoder(result)


@app.post("/test_connection")
@limiter.limit("10/hour")
async def connection(request: Request, token: str = Query(...)) -> dict[str, Any]:
    """Check that the configured API key works."""
    _require_admin(token)
    return jsonable_encoder(await check_connection(scheduler.quota, scheduler.client))
