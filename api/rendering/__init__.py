"""Rendering module for presentation concerns.

This module handles the SVG badge output. It knows nothing about upstreams
or caching: it turns a streak integer into image bytes.
"""

from rendering.badges import (
    BadgeRenderer,
    RenderError,
    UnknownStyleError,
)

__all__ = [
    "BadgeRenderer",
    "RenderError",
    "UnknownStyleError",
]
