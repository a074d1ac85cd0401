"""Rate limiting configuration using slowapi.

SCALABILITY NOTES:
- memory:// storage does NOT work with multiple workers/replicas
- Each replica maintains separate counters, effectively multiplying limits by N
- Set RATELIMIT_STORAGE_URI="redis://host:port/db" when scaling out
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from core.config import get_settings
from core.logger import get_logger

logger = get_logger(__name__)

settings = get_settings()

_using_redis = settings.ratelimit_storage_uri.startswith("redis://")

# Badges are fetched anonymously (README image embeds), so the client IP is
# the only identifier available.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit],
    storage_uri=settings.ratelimit_storage_uri,
    # Fall back to memory when Redis is temporarily unavailable
    in_memory_fallback_enabled=_using_redis,
    key_prefix="streak:",
)

BADGE_LIMIT = settings.rate_limit

HEALTH_LIMIT = "30/minute"


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Custom handler for rate limit exceeded errors."""
    logger.warning(
        "rate_limit.exceeded",
        client=get_remote_address(request),
        path=request.url.path,
        limit=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded. Please slow down.",
            "retry_after": exc.detail,
        },
        headers={"Retry-After": str(getattr(exc, "retry_after", 60))},
    )
