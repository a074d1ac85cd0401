"""Streak badge endpoints.

Both upstreams share one handler: the route only picks which StreakService
to ask. Errors are returned as SVG error badges so an embedding page shows
something readable instead of a broken image.
"""

import math

from fastapi import APIRouter, Query, Request, Response

from core import get_logger
from core.config import get_settings
from core.ratelimit import BADGE_LIMIT, limiter
from rendering import BadgeRenderer
from services.streak_service import StreakService
from services.upstream import (
    FetchError,
    SubjectValidationError,
    UpstreamAuthError,
    UpstreamNoDataError,
    UpstreamNotFoundError,
    UpstreamUnavailableError,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["badges"])

SVG_MEDIA_TYPE = "image/svg+xml"

_BADGE_RESPONSES: dict[int | str, dict[str, str]] = {
    400: {"description": "Missing username or unknown variant"},
    404: {"description": "User unknown to the upstream, or no activity data"},
    429: {"description": "Rate limited"},
    502: {"description": "Upstream rejected credentials or changed its format"},
    503: {"description": "Upstream unavailable"},
}


def _svg_response(
    body: bytes, status_code: int = 200, headers: dict[str, str] | None = None
) -> Response:
    return Response(
        content=body,
        status_code=status_code,
        media_type=SVG_MEDIA_TYPE,
        headers={"Vary": "Accept-Encoding", **(headers or {})},
    )


def _error_badge(
    renderer: BadgeRenderer,
    message: str,
    status_code: int,
    retry_after: float | None = None,
) -> Response:
    headers = {"Cache-Control": "no-store"}
    if retry_after is not None:
        # Whole seconds, rounded up
        headers["Retry-After"] = str(math.ceil(retry_after))
    return _svg_response(renderer.render_error_badge(message), status_code, headers)


def _fetch_error_status(exc: FetchError) -> tuple[int, str]:
    if isinstance(exc, UpstreamNotFoundError):
        return 404, "User not found"
    if isinstance(exc, UpstreamNoDataError):
        return 404, "No activity data for user"
    if isinstance(exc, UpstreamAuthError):
        return 502, "Upstream rejected credentials"
    if isinstance(exc, UpstreamUnavailableError):
        return 503, "Upstream unavailable, try again later"
    return 502, "Unexpected upstream response"


async def render_streak_badge(
    request: Request, source: str, username: str, variant: str
) -> Response:
    """Resolve the streak for ``username`` from ``source`` and render it."""
    services: dict[str, StreakService] = request.app.state.streak_services
    renderer: BadgeRenderer = request.app.state.badge_renderer
    service = services[source]

    # Unknown variants fail before any upstream call
    style = variant or renderer.default_style
    if style not in renderer.styles:
        return _error_badge(renderer, f"Unknown variant '{style}'", 400)

    try:
        streak = await service.get_streak(username)
    except SubjectValidationError as e:
        return _error_badge(renderer, str(e), 400)
    except FetchError as e:
        status_code, message = _fetch_error_status(e)
        logger.info(
            "badge.fetch_error",
            source=source,
            subject=username,
            error_type=type(e).__name__,
            status_code=status_code,
        )
        retry_after = getattr(e, "retry_after", None)
        return _error_badge(renderer, message, status_code, retry_after)

    svg = renderer.render(style, streak, label=service.label)
    max_age = get_settings().badge_cache_max_age
    return _svg_response(svg, headers={"Cache-Control": f"public, max-age={max_age}"})


@router.get(
    "/duolingo/button",
    response_class=Response,
    responses={200: {"content": {SVG_MEDIA_TYPE: {}}}, **_BADGE_RESPONSES},
)
@limiter.limit(BADGE_LIMIT)
async def duolingo_button(
    request: Request,
    username: str = Query(default=""),
    variant: str = Query(default=""),
) -> Response:
    """Duolingo streak badge."""
    return await render_streak_badge(request, "duolingo", username, variant)


@router.get(
    "/github/button",
    response_class=Response,
    responses={200: {"content": {SVG_MEDIA_TYPE: {}}}, **_BADGE_RESPONSES},
)
@limiter.limit(BADGE_LIMIT)
async def github_button(
    request: Request,
    username: str = Query(default=""),
    variant: str = Query(default=""),
) -> Response:
    """GitHub contribution streak badge."""
    return await render_streak_badge(request, "github", username, variant)
