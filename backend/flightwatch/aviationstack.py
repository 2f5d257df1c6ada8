"""aviationstack.py
~~~~~~~~~~~~~~~~~~
Thin async client for the **AviationStack** ``/flights`` endpoint.

Every call returns a result envelope instead of raising::

    {"success": True,  "status": {...}}
    {"success": False, "error": "Flight not found", "category": "not_found",
     "reached_upstream": True}

``category`` is one of :class:`FetchError`.  ``reached_upstream`` tells the
caller whether an HTTP request actually went out (and therefore cost a call
against the monthly quota).  This module never touches the quota itself.
"""

from __future__ import annotations

import datetime as dt
import enum
import logging
from typing import Any, Final, TypedDict

import httpx

from .api_logging import logged_request_async
from .constants import USER_AGENT

UTC: Final = dt.timezone.utc
LOG = logging.getLogger("aviationstack")

DEFAULT_BASE_URL: Final = "https://api.aviationstack.com/v1"
DEFAULT_TIMEOUT_SEC: Final[float] = 10.0

#: Provider error codes (HTTP 200 body) that mean bad credentials / throttling
_AUTH_CODES: Final = frozenset(
    {"invalid_access_key", "missing_access_key", "inactive_user", "function_access_restricted"}
)
_RATE_CODES: Final = frozenset({"usage_limit_reached", "rate_limit_reached"})


class FetchError(str, enum.Enum):
    CONFIG = "config"
    INVALID_REQUEST = "invalid_request"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    API_ERROR = "api_error"
    TRANSPORT = "transport"


class Endpoint(TypedDict, total=False):
    airport: str | None
    iata: str | None
    timezone: str | None
    terminal: str | None
    gate: str | None
    baggage: str | None
    scheduledTime: str | None
    estimatedTime: str | None
    actualTime: str | None
    delay: int | None


class FlightStatus(TypedDict, total=False):
    """Shape stored in the status cache and served to display consumers."""

    flightIata: str
    flightNumber: str
    airline: dict[str, str | None]
    status: str
    departure: Endpoint
    arrival: Endpoint
    lastUpdated: str


class FetchResult(TypedDict, total=False):
    success: bool
    status: FlightStatus
    flightInfo: dict[str, Any]
    data: dict[str, Any]
    error: str
    category: FetchError
    reached_upstream: bool


def _failure(category: FetchError, error: str, reached: bool = True) -> FetchResult:
    return {
        "success": False,
        "error": error,
        "category": category,
        "reached_upstream": reached,
    }


def _endpoint(raw: dict[str, Any] | None, *, arrival: bool = False) -> Endpoint:
    raw = raw or {}
    ep = Endpoint(
        airport=raw.get("airport"),
        iata=raw.get("iata"),
        terminal=raw.get("terminal"),
        gate=raw.get("gate"),
        scheduledTime=raw.get("scheduled"),
        estimatedTime=raw.get("estimated"),
        actualTime=raw.get("actual"),
        delay=raw.get("delay"),
    )
    if arrival:
        ep["baggage"] = raw.get("baggage")
    return ep


def parse_flight_status(flight: dict[str, Any]) -> FlightStatus:
    """Convert one ``data[]`` record into :class:`FlightStatus`."""
    ident = flight.get("flight") or {}
    airline = flight.get("airline") or {}
    return FlightStatus(
        flightIata=ident.get("iata"),
        flightNumber=ident.get("number"),
        airline={"name": airline.get("name"), "iata": airline.get("iata")},
        status=flight.get("flight_status") or "scheduled",
        departure=_endpoint(flight.get("departure")),
        arrival=_endpoint(flight.get("arrival"), arrival=True),
        lastUpdated=dt.datetime.now(UTC).isoformat(),
    )


def _flight_info(flight: dict[str, Any], flight_date: str) -> dict[str, Any]:
    ident = flight.get("flight") or {}
    airline = flight.get("airline") or {}
    dep = flight.get("departure") or {}
    arr = flight.get("arrival") or {}
    return {
        "flightIata": ident.get("iata"),
        "flightNumber": ident.get("number"),
        "airline": {"name": airline.get("name"), "iata": airline.get("iata")},
        "departure": {
            "airport": dep.get("airport"),
            "timezone": dep.get("timezone"),
            "iata": dep.get("iata"),
            "scheduledTime": dep.get("scheduled"),
        },
        "arrival": {
            "airport": arr.get("airport"),
            "timezone": arr.get("timezone"),
            "iata": arr.get("iata"),
            "scheduledTime": arr.get("scheduled"),
        },
        "date": flight_date,
        "validated": True,
    }


class AviationStackClient:
    """Stateless wrapper; one short-lived ``httpx.AsyncClient`` per call."""

    def __init__(
        self,
        api_key: str | None,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SEC,
    ) -> None:
        self._api_key = (api_key or "").strip()
        self._url = f"{base_url.rstrip('/')}/flights"
        self._timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def _query(
        self, params: dict[str, Any]
    ) -> tuple[dict[str, Any] | None, FetchResult | None]:
        """GET ``/flights`` → ``(payload, None)`` or ``(None, failure)``."""
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, headers={"User-Agent": USER_AGENT}
            ) as client:
                resp = await logged_request_async(
                    client,
                    "get",
                    self._url,
                    params={"access_key": self._api_key, **params},
                )
        except httpx.TimeoutException as exc:
            return None, _failure(FetchError.TRANSPORT, f"Request timed out: {exc}")
        except httpx.HTTPError as exc:
            return None, _failure(FetchError.TRANSPORT, f"Request failed: {exc}")

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        code = resp.status_code
        if code in (401, 403):
            return None, _failure(
                FetchError.UNAUTHORIZED,
                "Invalid API key or unauthorized access. Verify the AviationStack key is correct and active.",
            )
        if code == 429:
            return None, _failure(
                FetchError.RATE_LIMITED, "API rate limit exceeded. Try again later."
            )

        body_error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(body_error, dict):
            err_code = str(body_error.get("code") or "")
            message = body_error.get("message") or body_error.get("info") or "API error"
            if err_code in _AUTH_CODES:
                return None, _failure(FetchError.UNAUTHORIZED, message)
            if err_code in _RATE_CODES:
                return None, _failure(FetchError.RATE_LIMITED, message)
            return None, _failure(FetchError.API_ERROR, message)

        if code >= 400:
            return None, _failure(FetchError.API_ERROR, f"HTTP {code}")
        if not isinstance(payload, dict):
            return None, _failure(FetchError.API_ERROR, "Unexpected API response format")
        return payload, None

    def _precheck(self, flight_iata: str, flight_date: str) -> FetchResult | None:
        if not self.is_configured:
            return _failure(FetchError.CONFIG, "API key not configured", reached=False)
        if not flight_iata or not flight_date:
            return _failure(
                FetchError.INVALID_REQUEST,
                "Flight number and date are required",
                reached=False,
            )
        return None

    async def fetch_status(self, flight_iata: str, flight_date: str) -> FetchResult:
        """Live status of *flight_iata* departing on *flight_date*."""
        failed = self._precheck(flight_iata, flight_date)
        if failed:
            return failed

        LOG.info("[fetch] %s on %s", flight_iata, flight_date)
        payload, failed = await self._query(
            {"flight_iata": flight_iata, "flight_date": flight_date}
        )
        if failed:
            return failed

        data = payload.get("data") or []
        if not data:
            return _failure(FetchError.NOT_FOUND, "Flight not found")

        status = parse_flight_status(data[0])
        LOG.info("[fetch] %s status: %s", flight_iata, status["status"])
        return {"success": True, "status": status, "reached_upstream": True}

    async def validate_flight(self, flight_iata: str, flight_date: str) -> FetchResult:
        """Check that the flight exists and return its schedule summary."""
        failed = self._precheck(flight_iata, flight_date)
        if failed:
            return failed

        LOG.info("[validate] %s on %s", flight_iata, flight_date)
        payload, failed = await self._query(
            {"flight_iata": flight_iata, "flight_date": flight_date}
        )
        if failed:
            return failed

        data = payload.get("data") or []
        if not data:
            return _failure(
                FetchError.NOT_FOUND,
                "Flight not found. Please check the flight number and date.",
            )
        return {
            "success": True,
            "flightInfo": _flight_info(data[0], flight_date),
            "reached_upstream": True,
        }

    async def check_connection(self) -> FetchResult:
        """Cheapest possible request (``limit=1``) to prove the key works."""
        if not self.is_configured:
            return _failure(FetchError.CONFIG, "API key is required", reached=False)

        LOG.info("[connection] testing AviationStack API")
        payload, failed = await self._query({"limit": 1})
        if failed:
            return failed
        if "data" not in payload:
            return _failure(FetchError.API_ERROR, "Unexpected API response format")
        return {
            "success": True,
            "data": {"apiActive": True, "quotaInfo": payload.get("pagination") or {}},
            "reached_upstream": True,
        }


__all__ = [
    "AviationStackClient",
    "FetchError",
    "FetchResult",
    "FlightStatus",
    "parse_flight_status",
]
