"""event_service.py
~~~~~~~~~~~~~~~~~~
Discord webhook event emitter for operational visibility.

Events are fire-and-forget: errors are logged and never break the update
loop.  Nothing is sent when ``DISCORD_WEBHOOK_URL`` is unset.

Event Types:
    - scheduler_started:  triggers registered
    - api_error:          upstream fetch failed (1 per category per hour)
    - quota_exhausted:    monthly call budget used up (1 per month)
    - persistence_error:  cache/quota document could not be read or written
                          (1 per document per hour)
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import os
from typing import Any

import httpx
from dateutil import tz

# ── Configuration ─────────────────────────────────────────────────────────
DISCORD_WEBHOOK_URL = os.getenv("DISCORD_WEBHOOK_URL", "")
UTC = tz.UTC
LOG = logging.getLogger("event_service")

# ── Deduplication state ───────────────────────────────────────────────────
_last_api_error: dict[str, dt.datetime] = {}
API_ERROR_COOLDOWN_SEC = 3600

_last_persistence_error: dict[str, dt.datetime] = {}
PERSISTENCE_ERROR_COOLDOWN_SEC = 3600

# (year, month) of the last quota warning
_quota_warned_for: tuple[int, int] | None = None


def _is_configured() -> bool:
    """Check if Discord webhook is configured."""
    return bool(DISCORD_WEBHOOK_URL.strip())


async def _post_webhook(embed: dict[str, Any]) -> None:
    """Post an embed to the Discord webhook, logging (not raising) failures."""
    if not _is_configured():
        return

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.post(DISCORD_WEBHOOK_URL, json={"embeds": [embed]})
            if resp.status_code not in (200, 204):
                LOG.warning(
                    "Discord webhook returned %d: %s",
                    resp.status_code,
                    resp.text[:200],
                )
    except Exception as exc:
        LOG.warning("Discord webhook failed: %s", exc)


def _fire_and_forget(embed: dict[str, Any]) -> None:
    """Schedule webhook post without blocking."""
    if not _is_configured():
        return

    try:
        loop = asyncio.get_running_loop()
        loop.create_task(_post_webhook(embed))
    except RuntimeError:
        # called from a worker thread / plain sync code
        asyncio.run(_post_webhook(embed))


def _cooling_down(
    registry: dict[str, dt.datetime], key: str, cooldown: int, now: dt.datetime
) -> bool:
    last = registry.get(key)
    if last and (now - last).total_seconds() < cooldown:
        return True
    registry[key] = now
    return False


def emit_api_error(category: str, flight_iata: str, error_message: str) -> None:
    """Emit event when an upstream fetch fails (deduplicated per category)."""
    now = dt.datetime.now(UTC)
    if _cooling_down(_last_api_error, category, API_ERROR_COOLDOWN_SEC, now):
        LOG.debug("[event] api_error suppressed for %s", category)
        return

    embed = {
        "title": "AviationStack Error",
        "color": 0xE74C3C,  # Red
        "fields": [
            {"name": "Category", "value": category, "inline": True},
            {"name": "Flight", "value": flight_iata, "inline": True},
            {"name": "Error", "value": error_message[:500], "inline": False},
        ],
        "timestamp": now.isoformat(),
    }
    _fire_and_forget(embed)
    LOG.info("[event] api_error: %s %s - %s", category, flight_iata, error_message[:100])


def emit_quota_exhausted(calls: int, limit: int) -> None:
    """Emit event the first time the monthly budget is found exhausted."""
    global _quota_warned_for

    now = dt.datetime.now(UTC)
    period = (now.year, now.month)
    if _quota_warned_for == period:
        return
    _quota_warned_for = period

    embed = {
        "title": "Monthly API Quota Exhausted",
        "description": "Serving cached flight data until the counter resets.",
        "color": 0xF39C12,  # Orange
        "fields": [
            {"name": "Calls", "value": f"{calls}/{limit}", "inline": True},
            {"name": "Month", "value": f"{now.year}-{now.month:02d}", "inline": True},
        ],
        "timestamp": now.isoformat(),
    }
    _fire_and_forget(embed)
    LOG.info("[event] quota_exhausted: %d/%d", calls, limit)


def emit_persistence_error(document: str, error_message: str) -> None:
    """Emit event when a persisted document cannot be read or written."""
    now = dt.datetime.now(UTC)
    if _cooling_down(
        _last_persistence_error, document, PERSISTENCE_ERROR_COOLDOWN_SEC, now
    ):
        LOG.debug("[event] persistence_error suppressed for %s", document)
        return

    embed = {
        "title": "Persistence Error",
        "description": "State is only held in memory – check the data volume.",
        "color": 0x8E44AD,  # Purple
        "fields": [
            {"name": "Document", "value": document, "inline": True},
            {"name": "Error", "value": error_message[:500], "inline": False},
        ],
        "timestamp": now.isoformat(),
    }
    _fire_and_forget(embed)
    LOG.info("[event] persistence_error: %s - %s", document, error_message[:100])


def emit_scheduler_started(triggers: list[str]) -> None:
    """Emit event when the flight scheduler registers its triggers."""
    embed = {
        "title": "🛫 Flight Scheduler Started",
        "color": 0x3498DB,  # Blue
        "fields": [
            {"name": "Triggers", "value": ", ".join(triggers) or "none", "inline": False},
        ],
        "timestamp": dt.datetime.now(UTC).isoformat(),
    }
    _fire_and_forget(embed)
    LOG.info("[event] scheduler_started: %s", ", ".join(triggers))
