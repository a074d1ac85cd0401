"""Pytest configuration and shared fixtures.

This module provides:
- A controllable clock for cache expiry tests
- A throwaway httpx.AsyncClient for fetcher tests (mocked with respx)
"""

from collections.abc import AsyncGenerator

import httpx
import pytest

from core.config import clear_settings_cache


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def http_client() -> AsyncGenerator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=5.0) as client:
        yield client


@pytest.fixture(autouse=True)
def _reset_settings():
    """Settings are lru_cached; never leak them between tests."""
    clear_settings_cache()
    yield
    clear_settings_cache()
