"""Error taxonomy and shared plumbing for upstream streak sources.

Every failure a fetcher can produce is a ``FetchError`` subclass, so callers
can map them to HTTP responses without knowing which upstream was involved.

SCALABILITY:
- Circuit breaker fails fast when an upstream is unavailable (5 failures -> 60s)
- No automatic retries: a failed fetch surfaces to the caller, who decides
  whether a later request should try again
- Connection pooling via the shared httpx.AsyncClient (core.http_client)
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
from circuitbreaker import CircuitBreaker, CircuitBreakerError

T = TypeVar("T")

CIRCUIT_FAILURE_THRESHOLD = 5
CIRCUIT_RECOVERY_TIMEOUT = 60


class StreakError(Exception):
    """Base class for all streak resolution errors."""


class SubjectValidationError(StreakError):
    """Raised when the subject (username) is missing or malformed."""


class FetchError(StreakError):
    """Raised when an upstream source could not produce streak data."""

    def __init__(self, message: str, *, source: str):
        super().__init__(message)
        self.source = source


class UpstreamAuthError(FetchError):
    """The upstream rejected our credential (or lack of one)."""


class UpstreamNotFoundError(FetchError):
    """The upstream does not know the subject."""


class UpstreamProtocolError(FetchError):
    """The upstream answered in a shape we cannot parse."""


class UpstreamNoDataError(UpstreamProtocolError):
    """The upstream answered but reported no usable calendar entries."""


class UpstreamUnavailableError(FetchError):
    """Network error, timeout, rate limit or open circuit (retriable later)."""

    def __init__(
        self, message: str, *, source: str, retry_after: float | None = None
    ):
        super().__init__(message, source=source)
        self.retry_after = retry_after


class UpstreamStatusError(UpstreamUnavailableError):
    """The upstream returned a non-success HTTP status."""

    def __init__(
        self,
        message: str,
        *,
        source: str,
        status_code: int,
        retry_after: float | None = None,
    ):
        super().__init__(message, source=source, retry_after=retry_after)
        self.status_code = status_code


def parse_retry_after(header_value: str | None) -> float | None:
    """Parse Retry-After header into seconds."""
    if not header_value:
        return None
    try:
        seconds = float(header_value)
    except ValueError:
        # HTTP-date form; upstreams here send seconds
        return None
    return seconds if seconds >= 0 else None


def new_circuit_breaker(name: str) -> CircuitBreaker:
    """Build a breaker that only counts unavailability towards opening.

    Auth, not-found and protocol errors say nothing about upstream health and
    pass straight through without tripping it.
    """
    return CircuitBreaker(
        failure_threshold=CIRCUIT_FAILURE_THRESHOLD,
        recovery_timeout=CIRCUIT_RECOVERY_TIMEOUT,
        expected_exception=UpstreamUnavailableError,
        name=name,
    )


async def call_upstream(
    breaker: CircuitBreaker,
    source: str,
    func: Callable[[], Awaitable[T]],
) -> T:
    """Run one upstream exchange behind ``breaker``.

    Transport failures become ``UpstreamUnavailableError``; an open circuit
    does too, without touching the network.
    """

    async def _guarded() -> T:
        try:
            return await func()
        except httpx.TimeoutException as e:
            raise UpstreamUnavailableError(
                f"{source} request timed out", source=source
            ) from e
        except httpx.RequestError as e:
            raise UpstreamUnavailableError(
                f"{source} request failed: {type(e).__name__}", source=source
            ) from e

    try:
        # call_async only records outcomes; rejecting while open is up to us
        if breaker.opened:
            raise CircuitBreakerError(breaker)
        return await breaker.call_async(_guarded)
    except CircuitBreakerError as e:
        raise UpstreamUnavailableError(
            f"{source} is temporarily unavailable, please try again later",
            source=source,
            retry_after=float(max(breaker.open_remaining, 0)),
        ) from e


def raise_for_status(response: httpx.Response, source: str) -> None:
    """Map a non-200 response onto the error taxonomy.

    429 and exhausted-rate-limit 403s are unavailability (with Retry-After),
    other 401/403s are auth failures, everything else non-200 is a status
    error.
    """
    status = response.status_code
    if status == 200:
        return

    retry_after = parse_retry_after(response.headers.get("Retry-After"))
    if status == 429 or (
        status == 403 and response.headers.get("X-RateLimit-Remaining") == "0"
    ):
        raise UpstreamStatusError(
            f"{source} rate limited ({status})",
            source=source,
            status_code=status,
            retry_after=retry_after,
        )
    if status in (401, 403):
        raise UpstreamAuthError(
            f"{source} rejected the request credentials ({status})", source=source
        )
    raise UpstreamStatusError(
        f"{source} returned status {status}",
        source=source,
        status_code=status,
        retry_after=retry_after,
    )
