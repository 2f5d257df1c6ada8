"""
updater.py
~~~~~~~~~~
Refresh one flight's status without overspending the monthly quota.

For each flight:

1. Quota used up → serve the cached entry; **no** upstream call.
2. Otherwise ask the provider.
3. Success → overwrite the cache, count the call, return fresh status.
4. Failure → log why, count the call if it reached the provider, return
   the cached entry (``None`` when the flight was never cached).

Failed attempts still consume quota: the provider bills the request
whether or not it found the flight.
"""

from __future__ import annotations

import logging
from typing import Any

from . import event_service
from .aviationstack import AviationStackClient, FetchError, FetchResult
from .itinerary import TrackedFlight
from .quota import QuotaTracker
from .status_cache import StatusCache

LOG = logging.getLogger("updater")

#: Categories that are "no fresher data", not a fault worth alerting on
_QUIET_CATEGORIES = frozenset({FetchError.NOT_FOUND})


def _describe(result: FetchResult) -> str:
    category = result.get("category")
    label = category.value if isinstance(category, FetchError) else str(category)
    return f"{label}: {result.get('error', 'unknown error')}"


async def update_flight(
    flight: TrackedFlight,
    quota: QuotaTracker,
    cache: StatusCache,
    client: AviationStackClient,
) -> dict[str, Any] | None:
    """Return the freshest status we can get for *flight* (see module doc)."""
    LOG.info("[update] %s on %s (%s)", flight.flight_iata, flight.date, flight.tier.label)

    if quota.is_limit_reached():
        LOG.warning(
            "[update] AviationStack monthly limit reached, using cached data for %s",
            flight.key,
        )
        return cache.get(flight.flight_iata, flight.date)

    try:
        result = await client.fetch_status(flight.flight_iata, flight.date)
    except Exception as exc:  # noqa: BLE001 – treat as a failed upstream attempt
        LOG.error("[update] error updating %s: %s", flight.key, exc, exc_info=True)
        quota.record_call()
        return cache.get(flight.flight_iata, flight.date)

    if result.get("success"):
        cache.put(flight.flight_iata, flight.date, result["status"])
        quota.record_call()
        LOG.info("[update] %s updated successfully", flight.key)
        return result["status"]

    if result.get("reached_upstream"):
        quota.record_call()

    category = result.get("category")
    if category in _QUIET_CATEGORIES:
        LOG.warning("[update] no fresher data for %s (%s)", flight.key, _describe(result))
    else:
        LOG.warning("[update] failed to update %s: %s", flight.key, _describe(result))
        event_service.emit_api_error(
            category.value if isinstance(category, FetchError) else "unknown",
            flight.flight_iata,
            result.get("error", ""),
        )
    return cache.get(flight.flight_iata, flight.date)


async def validate_flight(
    flight_iata: str,
    flight_date: str,
    quota: QuotaTracker,
    client: AviationStackClient,
    *,
    bypass_limit: bool = False,
) -> FetchResult:
    """
    Confirm a flight exists before it is tracked.

    ``bypass_limit`` lets an administrator validate even when the monthly
    budget is spent; the call is still counted.
    """
    if not bypass_limit and quota.is_limit_reached():
        LOG.warning("[validate] AviationStack monthly limit reached")
        return {
            "success": False,
            "error": "Monthly API call limit reached. Flight validation unavailable.",
            "category": FetchError.RATE_LIMITED,
            "reached_upstream": False,
        }

    result = await client.validate_flight(flight_iata, flight_date)
    if result.get("reached_upstream"):
        quota.record_call()
    if not result.get("success"):
        LOG.warning("[validate] %s on %s: %s", flight_iata, flight_date, _describe(result))
    return result


async def check_connection(quota: QuotaTracker, client: AviationStackClient) -> FetchResult:
    """Probe the provider with a minimal request (counted against the quota)."""
    result = await client.check_connection()
    if result.get("reached_upstream"):
        quota.record_call()
    if not result.get("success"):
        LOG.error("[connection] AviationStack connection test failed: %s", _describe(result))
    return result


__all__ = ["update_flight", "validate_flight", "check_connection"]
