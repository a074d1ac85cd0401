"""API route modules."""

from .badge_routes import router as badge_router
from .health_routes import router as health_router

__all__ = [
    "badge_router",
    "health_router",
]
