"""
tests/test_scheduler.py
~~~~~~~~~~~~~~~~~~~~~~~
Trigger runs: selection per tier, pacing, de-duplication, lifecycle.
"""

from __future__ import annotations

import asyncio
import datetime as dt
from pathlib import Path
from typing import Any

import pytest

from flightwatch import config, scheduler as sched_mod
from flightwatch.itinerary import JsonItinerarySource
from flightwatch.quota import QuotaTracker
from flightwatch.scheduler import DEFAULT_TRIGGERS, FlightScheduler, build_scheduler
from flightwatch.status_cache import StatusCache
from flightwatch.store import JsonFileStore, MemoryStore
from flightwatch.tiers import UpdateTier

UTC = dt.timezone.utc


class FakeClient:
    def __init__(self, configured: bool = True) -> None:
        self.is_configured = configured
        self.fetched: list[tuple[str, str]] = []

    async def fetch_status(self, flight_iata: str, flight_date: str) -> dict[str, Any]:
        self.fetched.append((flight_iata, flight_date))
        return {"success": True, "status": {"status": "scheduled"}, "reached_upstream": True}


class FakeItinerary:
    def __init__(self, flights: list[dict[str, Any]]) -> None:
        self.flights = flights

    def list_tracked_candidates(self) -> list[dict[str, Any]]:
        return [{"vacationId": "v1", "trackingEnabled": True, "flights": self.flights}]


def _flight(number: str, date: str) -> dict[str, Any]:
    return {"flightNumber": number, "date": date, "validated": True}


# now = 2025-06-01 12:00 UTC
ITINERARY = [
    _flight("DAILY1", "2025-06-20"),
    _flight("THRICE1", "2025-06-03"),
    _flight("HOURLY1", "2025-06-01T16:00:00Z"),
    _flight("PAST1", "2025-05-31"),
]


@pytest.fixture
def sleeps() -> list[float]:
    return []


def _scheduler(clock, sleeps, flights=ITINERARY, client=None, limit=100) -> FlightScheduler:
    async def _sleep(sec: float) -> None:
        sleeps.append(sec)

    return FlightScheduler(
        itinerary=FakeItinerary(flights),
        quota=QuotaTracker(MemoryStore(), monthly_limit=limit, clock=clock),
        cache=StatusCache(MemoryStore(), clock=clock),
        client=client or FakeClient(),
        clock=clock,
        sleep=_sleep,
    )


# ------------------------------------------------------------------ #
# run_trigger selection
# ------------------------------------------------------------------ #
@pytest.mark.asyncio
@pytest.mark.parametrize(
    "tier, expected",
    [
        (UpdateTier.DAILY, ["DAILY1", "THRICE1", "HOURLY1"]),
        (UpdateTier.THRICE_DAILY, ["THRICE1", "HOURLY1"]),
        (UpdateTier.HOURLY, ["HOURLY1"]),
    ],
)
async def test_trigger_selects_by_tier(clock, sleeps, tier: UpdateTier, expected: list[str]) -> None:
    s = _scheduler(clock, sleeps)

    summary = await s.run_trigger(tier, tier.label)

    assert [f for f, _ in s.client.fetched] == expected
    assert summary["selected"] == len(expected)
    assert summary["processed"] == len(expected)
    assert summary["skipped_reason"] is None
    # one pause between consecutive provider calls
    assert sleeps == [1.0] * (len(expected) - 1)


@pytest.mark.asyncio
async def test_departed_flight_is_never_fetched(clock, sleeps) -> None:
    s = _scheduler(clock, sleeps, flights=[_flight("PAST1", "2025-05-31")])
    summary = await s.run_trigger(UpdateTier.DAILY, "daily")

    assert summary["selected"] == 0
    assert s.client.fetched == []


@pytest.mark.asyncio
async def test_duplicate_flights_fetched_once(clock, sleeps) -> None:
    flights = [_flight("AA1", "2025-06-03"), _flight("aa1", "2025-06-03"), _flight("AA1", "2025-06-04")]
    s = _scheduler(clock, sleeps, flights=flights)

    summary = await s.run_trigger(UpdateTier.DAILY, "daily")

    assert s.client.fetched == [("AA1", "2025-06-03"), ("AA1", "2025-06-04")]
    assert summary["processed"] == 2
    assert sleeps == [1.0]


@pytest.mark.asyncio
async def test_results_land_in_cache_and_quota(clock, sleeps) -> None:
    s = _scheduler(clock, sleeps)
    await s.run_trigger(UpdateTier.DAILY, "daily")

    assert s.get_cached_status("HOURLY1", "2025-06-01T16:00:00Z")["status"] == "scheduled"
    assert s.get_usage_stats()["callsThisMonth"] == 3
    assert s.get_usage_stats()["cachePersistenceErrors"] == 0


@pytest.mark.asyncio
async def test_exhausted_quota_makes_no_calls(clock, sleeps) -> None:
    s = _scheduler(clock, sleeps, limit=1)
    await s.run_trigger(UpdateTier.DAILY, "daily")

    assert len(s.client.fetched) == 1
    assert s.get_usage_stats()["callsThisMonth"] == 1


@pytest.mark.asyncio
async def test_unconfigured_client_skips_cycle(clock, sleeps) -> None:
    s = _scheduler(clock, sleeps, client=FakeClient(configured=False))

    summary = await s.run_trigger(UpdateTier.DAILY, "daily")

    assert summary["skipped_reason"] == "not_configured"
    assert s.client.fetched == []


@pytest.mark.asyncio
async def test_one_failing_flight_does_not_stop_the_run(clock, sleeps, monkeypatch) -> None:
    calls: list[str] = []

    async def _flaky(flight, quota, cache, client):
        calls.append(flight.flight_iata)
        if flight.flight_iata == "DAILY1":
            raise RuntimeError("unexpected")
        return None

    monkeypatch.setattr(sched_mod, "update_flight", _flaky)
    s = _scheduler(clock, sleeps)

    summary = await s.run_trigger(UpdateTier.DAILY, "daily")

    assert calls == ["DAILY1", "THRICE1", "HOURLY1"]
    assert summary["processed"] == 3


@pytest.mark.asyncio
async def test_concurrent_triggers_do_not_overlap(clock) -> None:
    active = 0
    peak = 0

    async def _sleep(sec: float) -> None:
        await asyncio.sleep(0)

    class _SlowClient(FakeClient):
        async def fetch_status(self, flight_iata, flight_date):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0)
            active -= 1
            return await super().fetch_status(flight_iata, flight_date)

    s = FlightScheduler(
        itinerary=FakeItinerary(ITINERARY),
        quota=QuotaTracker(MemoryStore(), clock=clock),
        cache=StatusCache(MemoryStore(), clock=clock),
        client=_SlowClient(),
        clock=clock,
        sleep=_sleep,
    )

    await asyncio.gather(
        s.run_trigger(UpdateTier.DAILY, "daily"),
        s.run_trigger(UpdateTier.HOURLY, "hourly"),
    )

    assert peak == 1
    assert len(s.client.fetched) == 4


@pytest.mark.asyncio
async def test_manual_update_uses_daily_selection(clock, sleeps) -> None:
    s = _scheduler(clock, sleeps)
    summary = await s.trigger_manual_update()

    assert summary["trigger"] == "manual"
    assert len(s.client.fetched) == 3


# ------------------------------------------------------------------ #
# Lifecycle
# ------------------------------------------------------------------ #
@pytest.mark.asyncio
async def test_start_registers_every_trigger(clock, sleeps) -> None:
    s = _scheduler(clock, sleeps)
    s.start()
    try:
        assert s.running is True
        rows = s.get_schedule()
        assert [r["name"] for r in rows] == ["daily", "midday", "evening", "hourly"]
        assert [r["cron"] for r in rows] == [t.cron for t in DEFAULT_TRIGGERS]
        assert rows[0]["timezone"] == "America/New_York"
        assert all(r["nextRun"] for r in rows)
    finally:
        s.stop()


@pytest.mark.asyncio
async def test_start_and_stop_are_idempotent(clock, sleeps) -> None:
    s = _scheduler(clock, sleeps)
    s.stop()  # before start: no-op
    s.start()
    s.start()
    assert s.running is True
    s.stop()
    s.stop()
    assert s.running is False
    assert all(r["nextRun"] is None for r in s.get_schedule())


@pytest.mark.asyncio
async def test_stop_abandons_remaining_flights(clock) -> None:
    holder: dict[str, FlightScheduler] = {}

    async def _sleep(sec: float) -> None:
        # stop arrives while pausing between the first and second flight
        holder["s"].stop()

    s = FlightScheduler(
        itinerary=FakeItinerary(ITINERARY),
        quota=QuotaTracker(MemoryStore(), clock=clock),
        cache=StatusCache(MemoryStore(), clock=clock),
        client=FakeClient(),
        clock=clock,
        sleep=_sleep,
    )
    holder["s"] = s
    s.start()

    summary = await s.run_trigger(UpdateTier.DAILY, "daily")

    assert s.client.fetched == [("DAILY1", "2025-06-20")]
    assert summary["skipped_reason"] == "stopped"
    assert s.running is False


@pytest.mark.asyncio
async def test_restart_does_not_revive_abandoned_run(clock) -> None:
    holder: dict[str, FlightScheduler] = {}

    async def _sleep(sec: float) -> None:
        # stop and immediately start again between two flights
        holder["s"].stop()
        holder["s"].start()

    s = FlightScheduler(
        itinerary=FakeItinerary(ITINERARY),
        quota=QuotaTracker(MemoryStore(), clock=clock),
        cache=StatusCache(MemoryStore(), clock=clock),
        client=FakeClient(),
        clock=clock,
        sleep=_sleep,
    )
    holder["s"] = s
    s.start()
    try:
        summary = await s.run_trigger(UpdateTier.DAILY, "daily")

        assert s.client.fetched == [("DAILY1", "2025-06-20")]
        assert summary["skipped_reason"] == "stopped"
        assert s.running is True
    finally:
        s.stop()


@pytest.mark.asyncio
async def test_manual_run_after_stop_still_completes(clock, sleeps) -> None:
    s = _scheduler(clock, sleeps)
    s.start()
    s.stop()

    summary = await s.trigger_manual_update()
    assert summary["processed"] == 3


# ------------------------------------------------------------------ #
# Read accessors / wiring
# ------------------------------------------------------------------ #
def test_tracked_flights_include_cached_status(clock, sleeps) -> None:
    s = _scheduler(clock, sleeps)
    s.cache.put("THRICE1", "2025-06-03", {"status": "scheduled"})

    rows = {r["flightIata"]: r for r in s.get_tracked_flights()}

    assert set(rows) == {"DAILY1", "THRICE1", "HOURLY1", "PAST1"}
    assert rows["THRICE1"]["updateFrequency"] == "thriceDaily"
    assert rows["THRICE1"]["cached"]["status"] == "scheduled"
    assert rows["PAST1"]["updateFrequency"] == "none"
    assert rows["DAILY1"]["cached"] is None


def test_build_scheduler_wires_persist_dir(isolate_persist_dir_tmp: Path, monkeypatch) -> None:
    monkeypatch.setattr(config, "AVIATIONSTACK_API_KEY", "abc")
    monkeypatch.setattr(config, "PACING_SEC", 0.25)

    s = build_scheduler()

    assert s.client.is_configured is True
    assert s.pacing_sec == 0.25
    assert isinstance(s.itinerary, JsonItinerarySource)
    assert s.itinerary.path.resolve() == (isolate_persist_dir_tmp / "house-data.json").resolve()
    assert [t.name for t in s.triggers] == ["daily", "midday", "evening", "hourly"]

    s.cache.put("AA1", "2025-06-01", {"status": "active"})
    on_disk = JsonFileStore(isolate_persist_dir_tmp / "flight-cache.json").load()
    assert "AA1_2025-06-01" in on_disk
