"""
itinerary.py
~~~~~~~~~~~~
Work out which flights the scheduler should care about right now.

The itinerary itself (vacations with their flights) is owned elsewhere; we
only read it through :class:`ItinerarySource`.  The durable adapter reads
the house-data JSON document::

    {"vacation": {"dates": [
        {"id": "1718000000000", "flightTrackingEnabled": true,
         "flights": [{"flightNumber": "AA123", "date": "2025-06-01",
                      "airline": "American Airlines", "validated": true}]}
    ]}}
"""

from __future__ import annotations

import datetime as dt
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from .constants import KEY_SEP
from .tiers import TRACKING_CUTOFF_D, UpdateTier, classify, days_until, parse_departure

LOG = logging.getLogger("itinerary")


class ItineraryError(RuntimeError):
    """The itinerary source is unreachable or its data is malformed."""


class ItinerarySource(Protocol):
    def list_tracked_candidates(self) -> list[dict[str, Any]]:
        """
        Return ``[{vacationId, trackingEnabled, flights: [...]}, ...]``
        where each flight has ``flightNumber, date, airline, validated``
        and optionally ``trackingEnabled``.
        """
        ...


@dataclass(frozen=True)
class TrackedFlight:
    vacation_id: str
    flight_iata: str
    date: str
    airline: str | None
    tier: UpdateTier

    @property
    def key(self) -> str:
        return f"{self.flight_iata}{KEY_SEP}{self.date}"

    def as_dict(self) -> dict[str, Any]:
        return {
            "vacationId": self.vacation_id,
            "flightIata": self.flight_iata,
            "date": self.date,
            "airline": self.airline,
            "updateFrequency": self.tier.label,
        }


class JsonItinerarySource:
    """Read vacations from the house-data JSON file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def list_tracked_candidates(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            LOG.debug("[itinerary] %s not found – no vacations", self.path)
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            dates = (data.get("vacation") or {}).get("dates") or []
        except (OSError, ValueError, AttributeError) as exc:
            raise ItineraryError(f"cannot read {self.path}: {exc}") from exc
        if not isinstance(dates, list):
            raise ItineraryError(f"{self.path}: vacation.dates is not a list")

        return [
            {
                "vacationId": str(vacation.get("id", "")),
                "trackingEnabled": bool(vacation.get("flightTrackingEnabled")),
                "flights": vacation.get("flights"),
            }
            for vacation in dates
            if isinstance(vacation, dict)
        ]


def enumerate_tracked_flights(
    source: ItinerarySource, now: dt.datetime
) -> list[TrackedFlight]:
    """
    Return every flight worth tracking at *now*, tagged with its tier.

    Skips vacations without tracking or flights, unvalidated flights and
    flights more than a day in the past.  Never raises: a broken source
    yields an empty list and a warning.
    """
    try:
        vacations = source.list_tracked_candidates()
    except Exception as exc:  # noqa: BLE001
        LOG.warning("[itinerary] source unavailable: %s", exc)
        return []

    tracked: list[TrackedFlight] = []
    for vacation in vacations or []:
        if not isinstance(vacation, dict):
            LOG.warning("[itinerary] skipping malformed vacation %r", vacation)
            continue
        flights = vacation.get("flights")
        if not vacation.get("trackingEnabled") or not flights:
            continue
        if not isinstance(flights, list):
            LOG.warning(
                "[itinerary] skipping vacation %s: flights is %s, not a list",
                vacation.get("vacationId"),
                type(flights).__name__,
            )
            continue

        for flight in flights:
            try:
                if not flight.get("validated"):
                    continue
                if flight.get("trackingEnabled") is False:
                    continue
                departure = parse_departure(flight["date"])
                if days_until(now, departure) < TRACKING_CUTOFF_D:
                    continue
                tracked.append(
                    TrackedFlight(
                        vacation_id=str(vacation.get("vacationId", "")),
                        flight_iata=str(flight["flightNumber"]).strip().upper(),
                        date=str(flight["date"]),
                        airline=flight.get("airline"),
                        tier=classify(now, departure),
                    )
                )
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                LOG.warning(
                    "[itinerary] skipping malformed flight in vacation %s: %s",
                    vacation.get("vacationId"),
                    exc,
                )

    return tracked


__all__ = [
    "ItineraryError",
    "ItinerarySource",
    "JsonItinerarySource",
    "TrackedFlight",
    "enumerate_tracked_flights",
]
