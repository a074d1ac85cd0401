"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Self
from urllib.parse import urlparse

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SERVICE_NAME = "streak-badges-api"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Feature flags, production defaults
    debug: bool = False
    enable_docs: bool = False  # Swagger UI at /docs

    # Outbound request timeout and connection pool, shared by both upstreams
    http_timeout: float = 10.0
    http_max_connections: int = 20
    http_max_keepalive_connections: int = 10

    # GitHub GraphQL API. A token is optional but raises the rate limit.
    github_graphql_url: str = "https://api.github.com/graphql"
    github_token: str = ""

    duolingo_base_url: str = "https://www.duolingo.com"

    # Streak cache TTLs per upstream
    github_cache_ttl_seconds: int = 4 * 60 * 60
    duolingo_cache_ttl_seconds: int = 2 * 60 * 60

    # How long past expiry a stale streak may still be served while the
    # upstream is unavailable
    stale_fallback_seconds: int = 5 * 60

    cache_max_entries: int = 10_000
    cache_sweep_interval_seconds: int = 10 * 60

    # Outbound fetches in flight per upstream
    max_concurrent_requests: int = 5

    # Inbound rate limiting (per client IP)
    rate_limit_per_minute: int = 60
    # Use "redis://host:port" when running more than one replica
    ratelimit_storage_uri: str = "memory://"

    default_badge_style: str = "default"
    badge_cache_max_age: int = 3 * 60 * 60

    @model_validator(mode="after")
    def validate_config(self) -> Self:
        if self.http_timeout <= 0:
            raise ValueError("HTTP_TIMEOUT must be positive")

        positive_ints = {
            "GITHUB_CACHE_TTL_SECONDS": self.github_cache_ttl_seconds,
            "DUOLINGO_CACHE_TTL_SECONDS": self.duolingo_cache_ttl_seconds,
            "STALE_FALLBACK_SECONDS": self.stale_fallback_seconds,
            "CACHE_MAX_ENTRIES": self.cache_max_entries,
            "CACHE_SWEEP_INTERVAL_SECONDS": self.cache_sweep_interval_seconds,
            "MAX_CONCURRENT_REQUESTS": self.max_concurrent_requests,
            "RATE_LIMIT_PER_MINUTE": self.rate_limit_per_minute,
            "HTTP_MAX_CONNECTIONS": self.http_max_connections,
            "HTTP_MAX_KEEPALIVE_CONNECTIONS": self.http_max_keepalive_connections,
            "BADGE_CACHE_MAX_AGE": self.badge_cache_max_age,
        }
        for name, value in positive_ints.items():
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")
        if self.http_max_keepalive_connections > self.http_max_connections:
            raise ValueError(
                "HTTP_MAX_KEEPALIVE_CONNECTIONS must not exceed HTTP_MAX_CONNECTIONS"
            )

        for name, url in (
            ("GITHUB_GRAPHQL_URL", self.github_graphql_url),
            ("DUOLINGO_BASE_URL", self.duolingo_base_url),
        ):
            parsed = urlparse(url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ValueError(f"{name} must be an http(s) URL, got {url!r}")

        if not self.default_badge_style.strip():
            raise ValueError("DEFAULT_BADGE_STYLE must not be empty")
        return self

    @property
    def rate_limit(self) -> str:
        """Limit string in slowapi notation, e.g. ``60/minute``."""
        return f"{self.rate_limit_per_minute}/minute"

    @property
    def github_token_configured(self) -> bool:
        return bool(self.github_token.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this in tests to reset settings between test cases.
    After clearing, the next get_settings() call will create
    a fresh Settings instance with current environment variables.

    Example:
        def test_something(monkeypatch):
            monkeypatch.setenv("HTTP_TIMEOUT", "5")
            clear_settings_cache()
            settings = get_settings()  # Fresh instance
    """
    get_settings.cache_clear()
