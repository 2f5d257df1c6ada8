"""
tests/conftest.py
~~~~~~~~~~~~~~~~~
Global pytest fixtures.

`isolate_persist_dir_tmp` points every persisted document at a per-test
temporary directory, so nothing is left behind under
`backend/local_data/` after the suite runs.  It also silences the Discord
webhook and clears the event dedup state between tests.
"""

from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Any

import pytest

from flightwatch import config, event_service


pytest_plugins = ["pytest_asyncio"]

UTC = dt.timezone.utc


@pytest.fixture(autouse=True)
def isolate_persist_dir_tmp(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """
    Redirect ``PERSIST_DIR`` (env *and* the already-imported config
    constant) to *tmp_path* for every test.
    """
    persist = tmp_path / "local_data"
    persist.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("PERSIST_DIR", str(persist))
    monkeypatch.setattr(config, "PERSIST_DIR", str(persist))
    monkeypatch.setattr(config, "ITINERARY_FILE", "")

    # Never talk to Discord from unit tests
    monkeypatch.setattr(event_service, "DISCORD_WEBHOOK_URL", "")
    monkeypatch.setattr(event_service, "_last_api_error", {})
    monkeypatch.setattr(event_service, "_last_persistence_error", {})
    monkeypatch.setattr(event_service, "_quota_warned_for", None)

    return persist


class FixedClock:
    """Callable clock that tests can move forward by hand."""

    def __init__(self, now: dt.datetime) -> None:
        self.now = now

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now = self.now + dt.timedelta(**kwargs)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(dt.datetime(2025, 6, 1, 12, 0, tzinfo=UTC))
