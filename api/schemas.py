"""Pydantic schemas for API responses."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str


class CacheStatsResponse(BaseModel):
    """Streak cache counters for one upstream source."""

    name: str
    ttl_seconds: float
    current_size: int
    max_size: int
    hits: int
    misses: int
    computes: int
    failures: int
    in_flight: int


class DetailedHealthResponse(BaseModel):
    """Health check with per-source cache status."""

    status: str
    service: str
    github_token_configured: bool
    caches: list[CacheStatsResponse]
