"""scheduler.py
~~~~~~~~~~~~~~~
Tier-triggered refresh of tracked flights.

Default timetable (scheduler timezone, ``America/New_York`` unless
configured otherwise):

=========  =============  ===========================================
trigger    cron           refreshes
=========  =============  ===========================================
daily      ``0 7 * * *``  every active flight
midday     ``0 12 * * *`` flights ≤ 3 days out (thrice-daily + hourly)
evening    ``0 17 * * *`` flights ≤ 3 days out (thrice-daily + hourly)
hourly     ``0 * * * *``  flights in their final 6 hours
=========  =============  ===========================================

Each trigger re-enumerates the itinerary (tiers depend on the clock, so
nothing is carried between ticks), keeps the flights at or above its tier
and updates them **one at a time** with a pause between provider calls.
Runs never overlap: a trigger that fires while another run is in progress
waits for it.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Final, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from . import config, event_service
from .aviationstack import AviationStackClient
from .itinerary import ItinerarySource, JsonItinerarySource, enumerate_tracked_flights
from .quota import QuotaTracker
from .status_cache import CacheEntry, StatusCache
from .store import JsonFileStore, determine_persist_dir
from .tiers import UpdateTier, select
from .updater import update_flight

UTC: Final = dt.timezone.utc
LOG = logging.getLogger("scheduler")

DEFAULT_PACING_SEC: Final[float] = 1.0
DEFAULT_TIMEZONE: Final = "America/New_York"


@dataclass(frozen=True)
class TriggerSpec:
    """One periodic entry point: when it fires and how urgent a flight must be."""

    name: str
    cron: str
    min_tier: UpdateTier


DEFAULT_TRIGGERS: Final[tuple[TriggerSpec, ...]] = (
    TriggerSpec("daily", "0 7 * * *", UpdateTier.DAILY),
    TriggerSpec("midday", "0 12 * * *", UpdateTier.THRICE_DAILY),
    TriggerSpec("evening", "0 17 * * *", UpdateTier.THRICE_DAILY),
    TriggerSpec("hourly", "0 * * * *", UpdateTier.HOURLY),
)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(UTC)


class FlightScheduler:
    """Owns the four triggers and drives :func:`update_flight` over flights."""

    def __init__(
        self,
        itinerary: ItinerarySource,
        quota: QuotaTracker,
        cache: StatusCache,
        client: AviationStackClient,
        *,
        triggers: Sequence[TriggerSpec] = DEFAULT_TRIGGERS,
        timezone: str = DEFAULT_TIMEZONE,
        pacing_sec: float = DEFAULT_PACING_SEC,
        clock: Callable[[], dt.datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.itinerary = itinerary
        self.quota = quota
        self.cache = cache
        self.client = client
        self.triggers = tuple(triggers)
        self.timezone = timezone
        self.pacing_sec = pacing_sec
        self._clock = clock
        self._sleep = sleep
        self._aps: AsyncIOScheduler | None = None
        self._run_lock: asyncio.Lock | None = None
        #: bumped by every stop(); a run is abandoned once it no longer matches
        self._generation = 0

    # ── lifecycle ───────────────────────────────────────────────────────
    @property
    def running(self) -> bool:
        return self._aps is not None

    def start(self) -> None:
        """
        Register every trigger.  Must be called from a running event loop.

        Starting an already running scheduler is a no-op.
        """
        if self._aps is not None:
            LOG.info("[scheduler] already running")
            return

        LOG.info("[scheduler] initializing flight data scheduler")
        aps = AsyncIOScheduler(
            event_loop=asyncio.get_running_loop(),
            timezone=self.timezone,
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 300,
            },
        )
        for spec in self.triggers:
            aps.add_job(
                self.run_trigger,
                CronTrigger.from_crontab(spec.cron, timezone=self.timezone),
                args=[spec.min_tier, spec.name],
                id=f"flights_{spec.name}",
                name=f"{spec.name} flight update",
                replace_existing=True,
            )
        aps.start()
        self._aps = aps

        LOG.info(
            "[scheduler] schedule: %s (%s)",
            ", ".join(f"{s.name}={s.cron}" for s in self.triggers),
            self.timezone,
        )
        event_service.emit_scheduler_started([s.name for s in self.triggers])

    def stop(self) -> None:
        """Tear all triggers down.  Safe to call twice or before :meth:`start`."""
        aps, self._aps = self._aps, None
        if aps is None:
            return
        # a run in progress finishes its current flight and then bails out
        self._generation += 1
        LOG.info("[scheduler] stopping flight data scheduler")
        aps.shutdown(wait=False)
        LOG.info("[scheduler] flight data scheduler stopped")

    # ── runs ────────────────────────────────────────────────────────────
    def _lock(self) -> asyncio.Lock:
        if self._run_lock is None:
            self._run_lock = asyncio.Lock()
        return self._run_lock

    async def run_trigger(self, min_tier: UpdateTier, label: str) -> dict[str, Any]:
        """
        Refresh every tracked flight at least as urgent as *min_tier*.

        Returns a small summary for logging / the manual-update endpoint.
        """
        summary: dict[str, Any] = {
            "trigger": label,
            "selected": 0,
            "processed": 0,
            "skipped_reason": None,
        }

        if not self.client.is_configured:
            LOG.warning("[%s] AviationStack API key not configured – skipping cycle", label)
            summary["skipped_reason"] = "not_configured"
            return summary

        # only a run that started under live triggers can be cut short by stop()
        generation = self._generation if self.running else None
        async with self._lock():
            flights = select(
                enumerate_tracked_flights(self.itinerary, self._clock()), min_tier
            )
            summary["selected"] = len(flights)
            if not flights:
                LOG.debug("[%s] no flights need %s updates", label, min_tier.label)
                return summary

            LOG.info("[%s] starting %s update for %d flights", label, min_tier.label, len(flights))
            seen: set[str] = set()
            for flight in flights:
                if flight.key in seen:
                    continue
                if seen:
                    await self._sleep(self.pacing_sec)
                if generation is not None and generation != self._generation:
                    LOG.info("[%s] scheduler stopping – abandoning remaining flights", label)
                    summary["skipped_reason"] = "stopped"
                    break
                seen.add(flight.key)
                try:
                    await update_flight(flight, self.quota, self.cache, self.client)
                except Exception as exc:  # noqa: BLE001
                    LOG.error("[%s] error updating %s: %s", label, flight.key, exc, exc_info=True)
                summary["processed"] += 1

            LOG.info("[%s] completed %s flight updates (%d)", label, min_tier.label, summary["processed"])
        return summary

    async def trigger_manual_update(self) -> dict[str, Any]:
        """Operator "update now": same selection as the daily trigger."""
        LOG.info("[manual] manual flight update triggered")
        return await self.run_trigger(UpdateTier.DAILY, "manual")

    # ── read accessors ──────────────────────────────────────────────────
    def get_cached_status(self, flight_iata: str, date: str) -> CacheEntry | None:
        return self.cache.get(flight_iata, date)

    def get_tracked_flights(self) -> list[dict[str, Any]]:
        """Current working set with each flight's tier and cached status."""
        return [
            {**flight.as_dict(), "cached": self.cache.get(flight.flight_iata, flight.date)}
            for flight in enumerate_tracked_flights(self.itinerary, self._clock())
        ]

    def get_usage_stats(self) -> dict[str, Any]:
        stats = self.quota.usage_stats()
        stats["cachePersistenceErrors"] = self.cache.persistence_errors
        return stats

    def get_schedule(self) -> list[dict[str, Any]]:
        """Trigger table with next fire time (``None`` while stopped)."""
        rows = []
        for spec in self.triggers:
            job = self._aps.get_job(f"flights_{spec.name}") if self._aps else None
            next_run = getattr(job, "next_run_time", None) if job else None
            rows.append(
                {
                    "name": spec.name,
                    "cron": spec.cron,
                    "tier": spec.min_tier.label,
                    "timezone": self.timezone,
                    "nextRun": next_run.isoformat() if next_run else None,
                }
            )
        return rows


def build_scheduler(settings: config.Settings | None = None) -> FlightScheduler:
    """Wire file-backed stores, the itinerary file and the provider client."""
    settings = settings or config.load_settings()
    persist_dir = determine_persist_dir(settings.persist_dir)
    itinerary_path = (
        Path(settings.itinerary_file).expanduser()
        if settings.itinerary_file
        else persist_dir / config.ITINERARY_FILENAME
    )

    triggers = (
        TriggerSpec("daily", settings.cron_daily, UpdateTier.DAILY),
        TriggerSpec("midday", settings.cron_midday, UpdateTier.THRICE_DAILY),
        TriggerSpec("evening", settings.cron_evening, UpdateTier.THRICE_DAILY),
        TriggerSpec("hourly", settings.cron_hourly, UpdateTier.HOURLY),
    )

    return FlightScheduler(
        itinerary=JsonItinerarySource(itinerary_path),
        quota=QuotaTracker(
            JsonFileStore(persist_dir / config.QUOTA_FILENAME),
            monthly_limit=settings.monthly_limit,
        ),
        cache=StatusCache(JsonFileStore(persist_dir / config.CACHE_FILENAME)),
        client=AviationStackClient(
            settings.api_key,
            base_url=settings.base_url,
            timeout=settings.timeout_sec,
        ),
        triggers=triggers,
        timezone=settings.timezone,
        pacing_sec=settings.pacing_sec,
    )


__all__ = [
    "DEFAULT_TRIGGERS",
    "FlightScheduler",
    "TriggerSpec",
    "build_scheduler",
]
