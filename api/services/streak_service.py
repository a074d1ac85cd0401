"""Streak resolution: one upstream source behind one cache.

A ``StreakSource`` is the single capability "resolve the streak for a
subject". GitHub (calendar walk) and Duolingo (profile field) are two values
of it, chosen at startup; the cache and the routes never see the difference.

CACHING:
- Each source gets its own StreakCache with its own TTL
- Outbound fetches per source are bounded by a semaphore
- If the upstream is unavailable and a stale entry is still retained, the
  stale streak is served instead of the error
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from core import get_logger
from core.cache import StreakCache
from services.upstream import SubjectValidationError, UpstreamUnavailableError

logger = get_logger(__name__)

MAX_SUBJECT_LENGTH = 100


@dataclass(frozen=True)
class StreakSource:
    name: str
    label: str
    fetch_streak: Callable[[str], Awaitable[int]]


def validate_subject(subject: str | None) -> str:
    """Reject missing, overlong or control-character subjects.

    The subject is otherwise passed through verbatim (case-sensitive).
    """
    if not subject:
        raise SubjectValidationError("Missing 'username' parameter")
    if len(subject) > MAX_SUBJECT_LENGTH:
        raise SubjectValidationError("'username' parameter is too long")
    if any(not ch.isprintable() for ch in subject):
        raise SubjectValidationError("'username' parameter is invalid")
    return subject


class StreakService:
    def __init__(
        self,
        source: StreakSource,
        cache: StreakCache,
        *,
        max_concurrency: int = 5,
        stale_fallback: bool = True,
    ):
        self.source = source
        self.cache = cache
        self._stale_fallback = stale_fallback
        self._semaphore = asyncio.Semaphore(max_concurrency)

    @property
    def name(self) -> str:
        return self.source.name

    @property
    def label(self) -> str:
        return self.source.label

    async def _compute(self, subject: str) -> int:
        async with self._semaphore:
            return await self.source.fetch_streak(subject)

    async def get_streak(self, subject: str) -> int:
        """Resolve the current streak for ``subject``.

        Raises:
            SubjectValidationError: subject missing or malformed
            FetchError: upstream failure with no usable cached value
        """
        subject = validate_subject(subject)
        try:
            return await self.cache.resolve(subject, lambda: self._compute(subject))
        except UpstreamUnavailableError as e:
            stale = self.cache.peek(subject) if self._stale_fallback else None
            if stale is None:
                raise
            logger.warning(
                "streak.stale_fallback",
                source=self.name,
                subject=subject,
                streak=stale.streak,
                error=str(e),
            )
            return stale.streak
