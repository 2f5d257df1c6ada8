"""tiers.py
~~~~~~~~~~
Classify how urgently a flight needs a status refresh.

The closer a flight gets to departure, the more often we spend an API call
on it:

* **daily**        – every future flight, once a day
* **thrice daily** – flights within 3 calendar days
* **hourly**       – the final 6 hours before departure
* **none**         – departed flights (no refresh)

Everything here is pure: the same ``(now, departure)`` pair always yields
the same tier.
"""

from __future__ import annotations

import datetime as dt
import enum
from typing import Final, Iterable, TypeVar

from dateutil import parser as dtparser
from dateutil import tz

UTC: Final = tz.UTC

#: Final window (hours) that gets hourly refreshes
HOURLY_WINDOW_H: Final[float] = 6.0
#: Calendar-day window that gets three refreshes a day
THRICE_DAILY_WINDOW_D: Final[int] = 3
#: Flights more than this many days in the past are no longer tracked
TRACKING_CUTOFF_D: Final[int] = -1


class UpdateTier(enum.IntEnum):
    """Refresh urgency, ordered from least to most urgent."""

    NONE = 0
    DAILY = 1
    THRICE_DAILY = 2
    HOURLY = 3

    @property
    def label(self) -> str:
        return {
            UpdateTier.NONE: "none",
            UpdateTier.DAILY: "daily",
            UpdateTier.THRICE_DAILY: "thriceDaily",
            UpdateTier.HOURLY: "hourly",
        }[self]


def _as_utc(value: dt.datetime) -> dt.datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_departure(value: str | dt.date | dt.datetime) -> dt.datetime:
    """
    Turn a flight date into an aware UTC departure instant.

    A bare date (``"2025-06-01"`` or :class:`datetime.date`) means midnight
    UTC of that day.

    Raises:
        ValueError: if *value* is not a recognisable ISO-8601 date/time.
    """
    if isinstance(value, dt.datetime):
        return _as_utc(value)
    if isinstance(value, dt.date):
        return dt.datetime(value.year, value.month, value.day, tzinfo=UTC)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"invalid flight date: {value!r}")
    return _as_utc(dtparser.isoparse(value.strip()))


def hours_until(now: dt.datetime, departure: dt.datetime) -> float:
    """Fractional hours from *now* until *departure* (negative once past)."""
    return (_as_utc(departure) - _as_utc(now)).total_seconds() / 3600


def days_until(now: dt.datetime, departure: dt.datetime) -> int:
    """
    Whole calendar days between today and the departure date (UTC).

    Time of day is ignored: two instants on the same calendar day give 0.
    """
    return (_as_utc(departure).date() - _as_utc(now).date()).days


def classify(now: dt.datetime, departure: dt.datetime) -> UpdateTier:
    """
    Map a departure instant to its :class:`UpdateTier`.

    First match wins:

    1. ``0 <= hours_until <= 6``  → HOURLY
    2. ``0 <= days_until <= 3``   → THRICE_DAILY
    3. ``days_until > 3``         → DAILY
    4. otherwise                  → NONE
    """
    hours = hours_until(now, departure)
    days = days_until(now, departure)

    if 0 <= hours <= HOURLY_WINDOW_H:
        return UpdateTier.HOURLY
    if 0 <= days <= THRICE_DAILY_WINDOW_D:
        return UpdateTier.THRICE_DAILY
    if days > THRICE_DAILY_WINDOW_D:
        return UpdateTier.DAILY
    return UpdateTier.NONE


T = TypeVar("T")


def select(flights: Iterable[T], min_tier: UpdateTier) -> list[T]:
    """
    Keep the flights a trigger of urgency *min_tier* should refresh.

    Tiers nest (daily ⊇ thrice daily ⊇ hourly), so a trigger takes every
    active flight at least as urgent as its own tier.
    """
    floor = max(min_tier, UpdateTier.DAILY)
    return [f for f in flights if f.tier >= floor]  # type: ignore[attr-defined]


__all__ = [
    "UpdateTier",
    "classify",
    "days_until",
    "hours_until",
    "parse_departure",
    "select",
]
