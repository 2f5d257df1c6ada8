"""
config.py
~~~~~~~~~
Centralised configuration – every environment variable in one place.

Values are read once at import time into module constants (so they can be
monkey-patched in tests) and bundled into :class:`Settings` by
:func:`load_settings` for the pieces that get wired together at startup.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Final

from dotenv import load_dotenv

load_dotenv()

# ── Upstream provider ────────────────────────────────────────────────────
AVIATIONSTACK_API_KEY: str = os.getenv("AVIATIONSTACK_API_KEY", "")
AVIATIONSTACK_BASE_URL: str = os.getenv(
    "AVIATIONSTACK_BASE_URL", "https://api.aviationstack.com/v1"
)
#: Free tier allows 100 calls per calendar month
MONTHLY_CALL_LIMIT: int = int(os.getenv("MONTHLY_CALL_LIMIT", "100"))
UPSTREAM_TIMEOUT_SEC: float = float(os.getenv("UPSTREAM_TIMEOUT_SEC", "10"))

# ── Scheduler ────────────────────────────────────────────────────────────
PACING_SEC: float = float(os.getenv("PACING_SEC", "1.0"))
SCHEDULER_TZ: str = os.getenv("SCHEDULER_TZ", "America/New_York")
CRON_DAILY: str = os.getenv("CRON_DAILY", "0 7 * * *")
CRON_MIDDAY: str = os.getenv("CRON_MIDDAY", "0 12 * * *")
CRON_EVENING: str = os.getenv("CRON_EVENING", "0 17 * * *")
CRON_HOURLY: str = os.getenv("CRON_HOURLY", "0 * * * *")

# ── Persistence / itinerary ──────────────────────────────────────────────
PERSIST_DIR: str = os.getenv("PERSIST_DIR", "local_data")
ITINERARY_FILE: str = os.getenv("ITINERARY_FILE", "")
QUOTA_FILENAME: Final = "aviationstack-usage.json"
CACHE_FILENAME: Final = "flight-cache.json"
ITINERARY_FILENAME: Final = "house-data.json"

# ── Admin ────────────────────────────────────────────────────────────────
ADMIN_TOKEN: str = os.getenv("ADMIN_TOKEN", "")


@dataclass(frozen=True)
class Settings:
    """Snapshot of the runtime configuration."""

    api_key: str
    base_url: str
    monthly_limit: int
    timeout_sec: float
    pacing_sec: float
    timezone: str
    cron_daily: str
    cron_midday: str
    cron_evening: str
    cron_hourly: str
    persist_dir: str
    itinerary_file: str


def load_settings() -> Settings:
    """Return a :class:`Settings` built from the module constants."""
    return Settings(
        api_key=AVIATIONSTACK_API_KEY.strip(),
        base_url=AVIATIONSTACK_BASE_URL.rstrip("/"),
        monthly_limit=MONTHLY_CALL_LIMIT,
        timeout_sec=UPSTREAM_TIMEOUT_SEC,
        pacing_sec=PACING_SEC,
        timezone=SCHEDULER_TZ,
        cron_daily=CRON_DAILY,
        cron_midday=CRON_MIDDAY,
        cron_evening=CRON_EVENING,
        cron_hourly=CRON_HOURLY,
        persist_dir=PERSIST_DIR,
        itinerary_file=ITINERARY_FILE,
    )
