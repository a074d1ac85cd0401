"""Duolingo profile fetcher.

The Duolingo users endpoint returns the streak directly, so no calendar walk
is needed: the value is read from the user record as-is.
"""

from __future__ import annotations

from typing import Any

import httpx
from circuitbreaker import CircuitBreaker
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core import get_logger
from services.upstream import (
    FetchError,
    UpstreamNotFoundError,
    UpstreamProtocolError,
    call_upstream,
    new_circuit_breaker,
    raise_for_status,
)

logger = get_logger(__name__)

SOURCE = "duolingo"
USERS_PATH = "/2017-06-30/users"
# Duolingo serves JSON reliably to curl-like clients
USER_AGENT = "curl/8.0.1"


class _DuolingoModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class CurrentStreak(_DuolingoModel):
    length: int | None = None


class StreakData(_DuolingoModel):
    current_streak: CurrentStreak | None = Field(default=None, alias="currentStreak")


class DuolingoUser(_DuolingoModel):
    streak: int | None = None
    streak_data: StreakData | None = Field(default=None, alias="streakData")

    @property
    def resolved_streak(self) -> int:
        """``streakData.currentStreak.length`` wins over ``streak`` when non-zero."""
        primary = self.streak or 0
        current = self.streak_data.current_streak if self.streak_data else None
        secondary = (current.length or 0) if current else 0
        return max(0, secondary if secondary != 0 else primary)


class DuolingoUsersResponse(_DuolingoModel):
    users: list[DuolingoUser] | None = None


class DuolingoProfileClient:
    """Reads current streaks from the Duolingo users API."""

    source = SOURCE

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        base_url: str,
        breaker: CircuitBreaker | None = None,
    ):
        self._http_client = http_client
        self._users_url = base_url.rstrip("/") + USERS_PATH
        self._breaker = breaker or new_circuit_breaker("duolingo_users_circuit")

    async def _get_user(self, username: str) -> httpx.Response:
        response = await self._http_client.get(
            self._users_url,
            params={"username": username},
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        )
        raise_for_status(response, SOURCE)
        return response

    async def fetch_streak(self, username: str) -> int:
        """Fetch the current streak for ``username``.

        Raises:
            FetchError: One of its subclasses, see services.upstream.
        """
        try:
            response = await call_upstream(
                self._breaker, SOURCE, lambda: self._get_user(username)
            )
            streak = _parse_streak(response, username)
        except FetchError as e:
            logger.warning(
                "duolingo.fetch.failed",
                subject=username,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise

        logger.debug("duolingo.fetch.ok", subject=username, streak=streak)
        return streak


def _parse_streak(response: httpx.Response, username: str) -> int:
    try:
        body: Any = response.json()
    except ValueError as e:
        raise UpstreamProtocolError(
            "Duolingo returned a response that is not JSON", source=SOURCE
        ) from e

    try:
        parsed = DuolingoUsersResponse.model_validate(body)
    except ValidationError as e:
        raise UpstreamProtocolError(
            "Duolingo returned an unexpected response shape", source=SOURCE
        ) from e

    if parsed.users is None:
        raise UpstreamProtocolError(
            "Duolingo response has no users list", source=SOURCE
        )
    if not parsed.users:
        raise UpstreamNotFoundError(
            f"Duolingo user not found: {username}", source=SOURCE
        )
    return parsed.users[0].resolved_streak
