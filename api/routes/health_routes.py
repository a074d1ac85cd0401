"""Health check endpoints."""

from fastapi import APIRouter, Request

from core.config import SERVICE_NAME, get_settings
from core.ratelimit import HEALTH_LIMIT, limiter
from schemas import CacheStatsResponse, DetailedHealthResponse, HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="healthy", service=SERVICE_NAME)


@router.get("/health/detailed", response_model=DetailedHealthResponse)
@limiter.limit(HEALTH_LIMIT)
async def health_detailed(request: Request) -> DetailedHealthResponse:
    """Detailed health check with per-source cache counters.

    Always returns 200. Upstream health is not checked here: a badge request
    is the only thing that talks to GitHub or Duolingo.
    """
    services = request.app.state.streak_services
    caches = [
        CacheStatsResponse.model_validate(service.cache.stats())
        for service in services.values()
    ]
    return DetailedHealthResponse(
        status="healthy",
        service=SERVICE_NAME,
        github_token_configured=get_settings().github_token_configured,
        caches=caches,
    )
