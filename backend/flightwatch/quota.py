"""
quota.py
~~~~~~~~
Monthly call budget for the upstream flight-data provider.

The counter lives in one small document::

    {"monthlyLimit": 100, "currentMonth": 5, "currentYear": 2025,
     "callsThisMonth": 42, "lastReset": "2025-06-01T00:03:11+00:00"}

* ``currentMonth`` is 0-based (January = 0), so June is ``5``.
* Rollover is lazy: every read or increment first checks whether the
  clock has moved into a new calendar month and, if so, zeroes the counter.
* :meth:`QuotaTracker.record_call` is the only way the counter goes up.

When the backing store fails we keep counting in memory and log the
failure as a persistence problem (it is *not* quota exhaustion).
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Callable, Final

from . import event_service
from .store import WRITE_LOCK, DocumentStore, PersistenceError

UTC: Final = dt.timezone.utc
LOG = logging.getLogger("quota")

DEFAULT_MONTHLY_LIMIT: Final[int] = 100


def _utcnow() -> dt.datetime:
    return dt.datetime.now(UTC)


class QuotaTracker:
    """Single writer of the monthly usage counter."""

    def __init__(
        self,
        store: DocumentStore,
        monthly_limit: int = DEFAULT_MONTHLY_LIMIT,
        clock: Callable[[], dt.datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._limit = int(monthly_limit)
        self._clock = clock
        self._usage: dict[str, Any] | None = None
        self.persistence_errors = 0

    # ── internal helpers ────────────────────────────────────────────────
    def _fresh(self, now: dt.datetime) -> dict[str, Any]:
        return {
            "monthlyLimit": self._limit,
            "currentMonth": now.month - 1,
            "currentYear": now.year,
            "callsThisMonth": 0,
            "lastReset": now.isoformat(),
        }

    def _loaded(self) -> dict[str, Any]:
        """Load the counter on first use."""
        if self._usage is None:
            now = self._clock()
            usage = self._fresh(now)
            try:
                stored = self._store.load()
            except PersistenceError as exc:
                self._persistence_failed("load", exc)
                stored = {}
            usage.update(stored)
            # configuration wins over whatever limit was persisted
            usage["monthlyLimit"] = self._limit
            self._usage = usage
        return self._usage

    def _persist(self) -> None:
        try:
            self._store.save(dict(self._loaded()))
        except PersistenceError as exc:
            self._persistence_failed("save", exc)

    def _persistence_failed(self, action: str, exc: Exception) -> None:
        self.persistence_errors += 1
        LOG.error("[persist] quota %s failed: %s", action, exc)
        event_service.emit_persistence_error("quota", str(exc))

    def _rollover(self) -> dict[str, Any]:
        """Reset the counter if the clock is in a new month. Caller holds the lock."""
        usage = self._loaded()
        now = self._clock()
        if now.month - 1 != usage["currentMonth"] or now.year != usage["currentYear"]:
            LOG.info(
                "[quota] new month %d-%02d – resetting counter (was %d/%d)",
                now.year,
                now.month,
                usage["callsThisMonth"],
                self._limit,
            )
            usage.update(
                currentMonth=now.month - 1,
                currentYear=now.year,
                callsThisMonth=0,
                lastReset=now.isoformat(),
            )
            self._persist()
        return usage

    # ── public API ──────────────────────────────────────────────────────
    @property
    def monthly_limit(self) -> int:
        return self._limit

    def record_call(self) -> int:
        """Count one upstream request attempt and return the new total."""
        with WRITE_LOCK:
            usage = self._rollover()
            usage["callsThisMonth"] += 1
            self._persist()
            calls = usage["callsThisMonth"]
        LOG.debug("[quota] calls this month: %d/%d", calls, self._limit)
        return calls

    def is_limit_reached(self) -> bool:
        """True once this month's calls have used up the budget."""
        with WRITE_LOCK:
            usage = self._rollover()
            reached = usage["callsThisMonth"] >= self._limit
            calls = usage["callsThisMonth"]
        if reached:
            event_service.emit_quota_exhausted(calls, self._limit)
        return reached

    def usage_stats(self) -> dict[str, Any]:
        """Counter plus ``remaining``/``percentUsed`` for display."""
        with WRITE_LOCK:
            usage = dict(self._rollover())
        calls = usage["callsThisMonth"]
        usage["remaining"] = self._limit - calls
        usage["percentUsed"] = int(calls * 100 / self._limit + 0.5) if self._limit else 100
        usage["persistenceErrors"] = self.persistence_errors
        return usage


__all__ = ["QuotaTracker", "DEFAULT_MONTHLY_LIMIT"]
