"""
tests/integration/conftest.py
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Integration test configuration - skip unless INTEGRATION_TESTS=1.

Usage:
    # Run only unit tests (default, CI-safe)
    pytest -q

    # Run integration tests locally (spends real AviationStack calls)
    INTEGRATION_TESTS=1 AVIATIONSTACK_API_KEY=... pytest tests/integration/ -v
"""

from __future__ import annotations

import os
import time
from typing import Generator

import pytest


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip all integration tests unless INTEGRATION_TESTS=1."""
    if os.getenv("INTEGRATION_TESTS"):
        return

    skip_marker = pytest.mark.skip(
        reason="Integration tests disabled (set INTEGRATION_TESTS=1 to enable)"
    )
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(skip_marker)


@pytest.fixture
def api_key() -> str:
    """Real AviationStack key; skips the test when none is configured."""
    key = os.getenv("AVIATIONSTACK_API_KEY", "").strip()
    if not key:
        pytest.skip("AVIATIONSTACK_API_KEY not set")
    return key


@pytest.fixture
def rate_limiter() -> Generator[None, None, None]:
    """Pause after each test, matching the scheduler's pacing."""
    yield
    time.sleep(1.0)


@pytest.fixture
def integration_timeout() -> float:
    """Default timeout for integration test HTTP calls (seconds)."""
    return 30.0
