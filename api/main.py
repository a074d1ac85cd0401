"""FastAPI application for the streak badge API."""

import asyncio
from contextlib import asynccontextmanager

import fastapi
import httpx
from fastapi import Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from core import get_logger
from core.cache import StreakCache, cache_sweep_loop
from core.config import Settings, get_settings
from core.http_client import close_http_client, get_http_client
from core.logger import configure_logging
from core.middleware import RequestContextMiddleware, SecurityHeadersMiddleware
from core.ratelimit import limiter, rate_limit_exceeded_handler
from rendering import BadgeRenderer
from routes import badge_router, health_router
from services.duolingo_service import DuolingoProfileClient
from services.github_service import GitHubCalendarClient
from services.streak_service import StreakService, StreakSource

configure_logging()
logger = get_logger(__name__)


def build_streak_services(
    settings: Settings, http_client: httpx.AsyncClient
) -> dict[str, StreakService]:
    """Wire each upstream client to its own cache, keyed by source name."""
    github = GitHubCalendarClient(
        http_client,
        graphql_url=settings.github_graphql_url,
        token=settings.github_token,
    )
    duolingo = DuolingoProfileClient(http_client, base_url=settings.duolingo_base_url)

    sources = [
        (
            StreakSource(
                name="github",
                label="GitHub streak",
                fetch_streak=github.fetch_streak,
            ),
            settings.github_cache_ttl_seconds,
        ),
        (
            StreakSource(
                name="duolingo",
                label="Duolingo streak",
                fetch_streak=duolingo.fetch_streak,
            ),
            settings.duolingo_cache_ttl_seconds,
        ),
    ]

    services: dict[str, StreakService] = {}
    for source, ttl_seconds in sources:
        cache = StreakCache(
            source.name,
            ttl_seconds,
            max_entries=settings.cache_max_entries,
            retention_seconds=settings.stale_fallback_seconds,
        )
        services[source.name] = StreakService(
            source, cache, max_concurrency=settings.max_concurrent_requests
        )
    return services


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler for unhandled exceptions."""
    logger.exception(
        "unhandled.exception",
        exc_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred. Please try again."},
    )


@asynccontextmanager
async def lifespan(app: fastapi.FastAPI):
    """Build clients, caches and renderer at startup, close them on shutdown."""
    settings = get_settings()

    http_client = await get_http_client()
    app.state.streak_services = build_streak_services(settings, http_client)
    app.state.badge_renderer = BadgeRenderer(settings.default_badge_style)

    sweep_task = asyncio.create_task(
        cache_sweep_loop(
            [service.cache for service in app.state.streak_services.values()],
            settings.cache_sweep_interval_seconds,
        )
    )
    logger.info(
        "init.complete",
        sources=list(app.state.streak_services),
        styles=app.state.badge_renderer.styles,
        github_token_configured=settings.github_token_configured,
    )

    try:
        yield
    finally:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass
        await close_http_client()
        logger.info("shutdown.complete")


_settings = get_settings()

app = fastapi.FastAPI(
    title="Streak Badges API",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if _settings.enable_docs or _settings.debug else None,
    redoc_url="/redoc" if _settings.enable_docs or _settings.debug else None,
    openapi_url=("/openapi.json" if _settings.enable_docs or _settings.debug else None),
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(Exception, global_exception_handler)

app.add_middleware(GZipMiddleware, minimum_size=500)
app.add_middleware(SecurityHeadersMiddleware)
# Outermost, so every log line of the request carries its id
app.add_middleware(RequestContextMiddleware)

app.include_router(health_router)
app.include_router(badge_router)
