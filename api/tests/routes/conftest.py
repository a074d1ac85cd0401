"""Route test configuration: disable the rate limiter, build a test app."""

from collections.abc import AsyncGenerator
from unittest.mock import patch

import fastapi
import httpx
import pytest

from core.cache import StreakCache
from core.ratelimit import limiter
from rendering import BadgeRenderer
from routes import badge_router, health_router
from services.streak_service import StreakService, StreakSource


class ScriptedFetcher:
    """Stand-in upstream: returns ``result`` or raises ``error``."""

    def __init__(self, result: int = 0):
        self.result = result
        self.error: Exception | None = None
        self.calls: list[str] = []

    async def __call__(self, subject: str) -> int:
        self.calls.append(subject)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture(autouse=True)
def _disable_rate_limiter():
    """Disable slowapi rate limiting so route handlers can be called directly."""
    with patch("core.ratelimit.limiter.enabled", False):
        yield


@pytest.fixture
def fetchers() -> dict[str, ScriptedFetcher]:
    return {"github": ScriptedFetcher(), "duolingo": ScriptedFetcher()}


@pytest.fixture
def app(fetchers, clock) -> fastapi.FastAPI:
    app = fastapi.FastAPI()
    app.state.limiter = limiter
    app.state.badge_renderer = BadgeRenderer("default")
    app.state.streak_services = {
        name: StreakService(
            StreakSource(name=name, label=f"{name} streak", fetch_streak=fetcher),
            StreakCache(name, 60, retention_seconds=30, clock=clock),
        )
        for name, fetcher in fetchers.items()
    }
    app.include_router(health_router)
    app.include_router(badge_router)
    return app


@pytest.fixture
async def client(app) -> AsyncGenerator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
