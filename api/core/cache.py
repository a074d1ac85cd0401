"""In-memory TTL cache for resolved streaks.

One ``StreakCache`` is built per upstream at startup and handed to the
service that owns it. Entries are keyed by subject (case-sensitive) and hold
the streak together with the clock reading at which it was computed.

Freshness is logical: an entry is valid while ``now < computed_at + ttl``.
Expired entries stay physically present for ``retention_seconds`` longer so
the service can fall back to them while the upstream is unavailable; the
backing cachetools ``TTLCache`` drops them after that, and ``sweep()`` reclaims
the memory eagerly.

Note: Cache is per-worker/replica, not shared across instances, and is cold
after every restart.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from functools import partial

from cachetools import TTLCache

from core.logger import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_SIZE = 10_000

Clock = Callable[[], float]
ComputeFn = Callable[[], Awaitable[int]]


@dataclass(frozen=True, slots=True)
class CacheEntry:
    subject: str
    streak: int
    computed_at: float


class StreakCache:
    """Get-or-compute cache for one upstream source.

    ``resolve`` never holds the table lock while ``compute`` runs: the fetch
    happens first, the lock is taken only to install the result. A failed
    compute leaves any existing entry untouched; failures are not cached.

    With ``single_flight`` enabled, concurrent misses for the same subject in
    one event loop share a single compute task instead of each hitting the
    upstream.
    """

    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        *,
        max_entries: int = DEFAULT_MAX_SIZE,
        retention_seconds: float = 0,
        clock: Clock = time.monotonic,
        single_flight: bool = True,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if retention_seconds < 0:
            raise ValueError("retention_seconds must not be negative")

        self.name = name
        self.ttl_seconds = ttl_seconds
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._single_flight = single_flight
        self._lock = threading.Lock()
        self._entries: TTLCache[str, CacheEntry] = TTLCache(
            maxsize=max_entries,
            ttl=ttl_seconds + retention_seconds,
            timer=clock,
        )
        self._inflight: dict[str, asyncio.Task[int]] = {}

        self._hits = 0
        self._misses = 0
        self._computes = 0
        self._failures = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def is_fresh(self, entry: CacheEntry) -> bool:
        return self._clock() < entry.computed_at + self.ttl_seconds

    def peek(self, subject: str) -> CacheEntry | None:
        """Return the retained entry for ``subject``, fresh or stale."""
        with self._lock:
            return self._entries.get(subject)

    def get(self, subject: str) -> CacheEntry | None:
        """Return the entry for ``subject`` only while it is within its TTL."""
        entry = self.peek(subject)
        if entry is not None and self.is_fresh(entry):
            return entry
        return None

    async def resolve(self, subject: str, compute: ComputeFn) -> int:
        """Return the cached streak for ``subject`` or compute and store it.

        Errors raised by ``compute`` propagate to the caller unchanged.
        """
        entry = self.get(subject)
        if entry is not None:
            self._hits += 1
            logger.debug("streak.cache.hit", cache=self.name, subject=subject)
            return entry.streak

        self._misses += 1
        logger.debug("streak.cache.miss", cache=self.name, subject=subject)

        if not self._single_flight:
            return await self._compute_and_store(subject, compute)

        while (task := self._inflight.get(subject)) is not None:
            try:
                return await asyncio.shield(task)
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if not task.cancelled() or (current and current.cancelling()):
                    raise
                self._forget_inflight(subject, task)
            # The caller that started the shared compute went away before it
            # finished; take over unless a result landed in the meantime.
            entry = self.get(subject)
            if entry is not None:
                return entry.streak

        task = asyncio.ensure_future(self._compute_and_store(subject, compute))
        self._inflight[subject] = task
        task.add_done_callback(partial(self._forget_inflight, subject))
        return await task

    async def _compute_and_store(self, subject: str, compute: ComputeFn) -> int:
        self._computes += 1
        try:
            streak = await compute()
        except Exception as e:
            self._failures += 1
            logger.debug(
                "streak.cache.compute_failed",
                cache=self.name,
                subject=subject,
                error_type=type(e).__name__,
            )
            raise

        streak = max(0, int(streak))
        entry = CacheEntry(subject=subject, streak=streak, computed_at=self._clock())
        with self._lock:
            self._entries[subject] = entry
        logger.debug(
            "streak.cache.stored", cache=self.name, subject=subject, streak=streak
        )
        return streak

    def _forget_inflight(self, subject: str, task: asyncio.Task[int]) -> None:
        if self._inflight.get(subject) is task:
            del self._inflight[subject]

    def sweep(self) -> int:
        """Drop entries past their retention window. Returns how many went."""
        with self._lock:
            return len(self._entries.expire())

    def clear(self) -> None:
        """For testing."""
        with self._lock:
            self._entries.clear()
        self._hits = self._misses = self._computes = self._failures = 0

    def stats(self) -> dict[str, int | float | str]:
        with self._lock:
            current_size = len(self._entries)
            max_size = self._entries.maxsize
        return {
            "name": self.name,
            "ttl_seconds": self.ttl_seconds,
            "current_size": current_size,
            "max_size": max_size,
            "hits": self._hits,
            "misses": self._misses,
            "computes": self._computes,
            "failures": self._failures,
            "in_flight": len(self._inflight),
        }


async def cache_sweep_loop(
    caches: Iterable[StreakCache], interval_seconds: float
) -> None:
    """Periodically reclaim expired entries. Runs until cancelled."""
    caches = tuple(caches)
    while True:
        await asyncio.sleep(interval_seconds)
        for cache in caches:
            removed = cache.sweep()
            if removed:
                logger.info("streak.cache.swept", cache=cache.name, removed=removed)
