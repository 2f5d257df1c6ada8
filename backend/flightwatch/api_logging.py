"""
api_logging.py
~~~~~~~~~~~~~~
One concise log line per outbound provider request, with credentials
scrubbed from the logged query string.

Usage example
-------------
>>> from .api_logging import logged_request_async
>>> async with httpx.AsyncClient(timeout=10) as cli:
...     resp = await logged_request_async(
...         cli, "get", "https://api.aviationstack.com/v1/flights",
...         params={"access_key": key, "flight_iata": "AA123"},
...     )
"""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping

LOG = logging.getLogger("extapi")

#: Query parameters never written to the log
SECRET_PARAMS = frozenset({"access_key", "api_key", "token"})


def redact(params: Mapping[str, Any] | None) -> str:
    """Render *params* as ``k=v&…`` with secret values masked."""
    if not params:
        return ""
    return "&".join(
        f"{k}={'***' if k in SECRET_PARAMS else v}" for k, v in params.items()
    )


async def logged_request_async(
    client: Any,
    method: str,
    url: str,
    *args: Any,
    raise_for_status: bool = False,
    **kwargs: Any,
):
    """
    Issue one HTTP request on an ``httpx.AsyncClient`` **and** log it.

    Parameters
    ----------
    client:
        ``httpx.AsyncClient`` (or anything with awaitable verb methods).
    method:
        HTTP verb – ``"get"``, ``"post"`` …
    url:
        Absolute URL without query string; pass parameters via ``params=``.
    raise_for_status:
        *True* ⇒ propagate ≥500 via :pymeth:`httpx.Response.raise_for_status`.
        Defaults to *False*: callers classify the status code themselves.

    Notes
    -----
    * 2xx → INFO, 4xx → WARNING (401/403/429 matter for the quota),
      ≥500 → WARNING.
    * Transport errors are logged as ``FAIL`` and re-raised.
    """
    verb = method.upper()
    shown = url
    query = redact(kwargs.get("params"))
    if query:
        shown = f"{url}?{query}"

    t0 = time.perf_counter()
    try:
        response = await getattr(client, method.lower())(url, *args, **kwargs)
    except Exception as exc:
        latency_ms = (time.perf_counter() - t0) * 1000.0
        LOG.warning("FAIL %s %s %.0f ms %s", verb, shown, latency_ms, exc)
        raise

    latency_ms = (time.perf_counter() - t0) * 1000.0
    code = response.status_code

    if code >= 400:
        LOG.warning("%s %s → %s (%.0f ms)", verb, shown, code, latency_ms)
    else:
        LOG.info("%s %s → %s (%.0f ms)", verb, shown, code, latency_ms)

    if raise_for_status and code >= 500:
        response.raise_for_status()

    return response


__all__ = ["logged_request_async", "redact"]
