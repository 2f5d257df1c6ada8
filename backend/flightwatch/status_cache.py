"""
status_cache.py
~~~~~~~~~~~~~~~
Last known status per flight occurrence, so we can fall back on it when a
fresh fetch is impossible (quota used up, provider down, flight unknown).

* Keyed by ``"<flightIata>_<date>"`` – e.g. ``"AA123_2025-06-01"``.
* Each entry is the provider status plus ``cachedAt`` (ISO-8601 UTC).
* A write replaces the whole entry; nothing is merged from the old one.
* Entries never expire.  Staleness is visible through ``cachedAt``.
"""

from __future__ import annotations

import copy
import datetime as dt
import logging
from typing import Any, Callable, Final

from . import event_service
from .constants import KEY_SEP
from .store import WRITE_LOCK, DocumentStore, PersistenceError

UTC: Final = dt.timezone.utc
LOG = logging.getLogger("status_cache")

CacheEntry = dict[str, Any]


def cache_key(flight_iata: str, date: str) -> str:
    return f"{flight_iata}{KEY_SEP}{date}"


def _utcnow() -> dt.datetime:
    return dt.datetime.now(UTC)


class StatusCache:
    """Whole-document cache; loaded on first use, flushed on every put."""

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], dt.datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._clock = clock
        self._doc: dict[str, CacheEntry] | None = None
        self.persistence_errors = 0

    def _loaded(self) -> dict[str, CacheEntry]:
        if self._doc is None:
            try:
                self._doc = self._store.load()
            except PersistenceError as exc:
                self._persistence_failed("load", exc)
                self._doc = {}
        return self._doc

    def _persistence_failed(self, action: str, exc: Exception) -> None:
        self.persistence_errors += 1
        LOG.error("[persist] flight cache %s failed: %s", action, exc)
        event_service.emit_persistence_error("flight-cache", str(exc))

    def get(self, flight_iata: str, date: str) -> CacheEntry | None:
        """Return a copy of the cached entry, or *None* if never cached."""
        with WRITE_LOCK:
            entry = self._loaded().get(cache_key(flight_iata, date))
            return copy.deepcopy(entry) if entry is not None else None

    def put(self, flight_iata: str, date: str, status: dict[str, Any]) -> CacheEntry:
        """
        Store *status* under the flight's key with a fresh ``cachedAt``.

        If the document cannot be written, the in-memory entry is still
        updated (and served for the rest of this process) but the failure
        is logged as a persistence error.
        """
        entry: CacheEntry = {
            **copy.deepcopy(status),
            "cachedAt": self._clock().isoformat(),
        }
        key = cache_key(flight_iata, date)
        with WRITE_LOCK:
            doc = self._loaded()
            doc[key] = entry
            try:
                self._store.save(doc)
            except PersistenceError as exc:
                self._persistence_failed("save", exc)
        LOG.debug("[cache] stored %s", key)
        return copy.deepcopy(entry)

    def entries(self) -> dict[str, CacheEntry]:
        """Snapshot of every cached entry."""
        with WRITE_LOCK:
            return copy.deepcopy(self._loaded())


__all__ = ["CacheEntry", "StatusCache", "cache_key"]
