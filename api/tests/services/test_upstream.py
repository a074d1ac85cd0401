"""Tests for services/upstream.py."""

import httpx
import pytest

from services.upstream import (
    CIRCUIT_FAILURE_THRESHOLD,
    CIRCUIT_RECOVERY_TIMEOUT,
    UpstreamAuthError,
    UpstreamNotFoundError,
    UpstreamStatusError,
    UpstreamUnavailableError,
    call_upstream,
    new_circuit_breaker,
    parse_retry_after,
    raise_for_status,
)

pytestmark = pytest.mark.unit


class CountingCall:
    """Upstream exchange that counts invocations and raises ``error``."""

    def __init__(self, error: Exception | None = None, result: str = "ok"):
        self.error = error
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


def _status_error(status: int = 503) -> UpstreamStatusError:
    return UpstreamStatusError(
        f"test returned status {status}", source="test", status_code=status
    )


class TestCallUpstream:
    async def test_returns_result(self):
        breaker = new_circuit_breaker("test_circuit")
        assert await call_upstream(breaker, "test", CountingCall()) == "ok"

    async def test_open_circuit_rejects_without_calling(self):
        breaker = new_circuit_breaker("test_circuit")
        exchange = CountingCall(error=_status_error())

        for _ in range(CIRCUIT_FAILURE_THRESHOLD):
            with pytest.raises(UpstreamStatusError):
                await call_upstream(breaker, "test", exchange)

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await call_upstream(breaker, "test", exchange)

        assert exchange.calls == CIRCUIT_FAILURE_THRESHOLD
        assert not isinstance(exc_info.value, UpstreamStatusError)
        assert "temporarily unavailable" in str(exc_info.value)
        assert 0 < exc_info.value.retry_after <= CIRCUIT_RECOVERY_TIMEOUT

    async def test_open_circuit_rejects_even_healthy_calls(self):
        breaker = new_circuit_breaker("test_circuit")
        failing = CountingCall(error=_status_error())
        for _ in range(CIRCUIT_FAILURE_THRESHOLD):
            with pytest.raises(UpstreamStatusError):
                await call_upstream(breaker, "test", failing)

        healthy = CountingCall()
        with pytest.raises(UpstreamUnavailableError):
            await call_upstream(breaker, "test", healthy)
        assert healthy.calls == 0

    async def test_transport_failures_count_towards_opening(self):
        breaker = new_circuit_breaker("test_circuit")
        exchange = CountingCall(error=httpx.ConnectError("refused"))

        for _ in range(CIRCUIT_FAILURE_THRESHOLD):
            with pytest.raises(UpstreamUnavailableError, match="request failed"):
                await call_upstream(breaker, "test", exchange)

        with pytest.raises(UpstreamUnavailableError, match="temporarily unavailable"):
            await call_upstream(breaker, "test", exchange)
        assert exchange.calls == CIRCUIT_FAILURE_THRESHOLD

    async def test_answers_from_upstream_never_open_it(self):
        breaker = new_circuit_breaker("test_circuit")
        exchange = CountingCall(error=UpstreamNotFoundError("gone", source="test"))

        for _ in range(CIRCUIT_FAILURE_THRESHOLD + 3):
            with pytest.raises(UpstreamNotFoundError):
                await call_upstream(breaker, "test", exchange)

        assert exchange.calls == CIRCUIT_FAILURE_THRESHOLD + 3

    async def test_success_resets_failure_count(self):
        breaker = new_circuit_breaker("test_circuit")
        failing = CountingCall(error=_status_error())

        for _ in range(CIRCUIT_FAILURE_THRESHOLD - 1):
            with pytest.raises(UpstreamStatusError):
                await call_upstream(breaker, "test", failing)
        await call_upstream(breaker, "test", CountingCall())
        for _ in range(CIRCUIT_FAILURE_THRESHOLD - 1):
            with pytest.raises(UpstreamStatusError):
                await call_upstream(breaker, "test", failing)

        assert failing.calls == 2 * (CIRCUIT_FAILURE_THRESHOLD - 1)


class TestRaiseForStatus:
    def test_200_passes(self):
        raise_for_status(httpx.Response(200), "test")

    @pytest.mark.parametrize("status", [401, 403])
    def test_credential_rejections(self, status):
        with pytest.raises(UpstreamAuthError):
            raise_for_status(httpx.Response(status), "test")

    def test_exhausted_rate_limit_403_is_unavailable(self):
        response = httpx.Response(
            403, headers={"X-RateLimit-Remaining": "0", "Retry-After": "12"}
        )
        with pytest.raises(UpstreamStatusError) as exc_info:
            raise_for_status(response, "test")
        assert exc_info.value.retry_after == 12.0

    @pytest.mark.parametrize("status", [404, 429, 500, 502])
    def test_other_statuses(self, status):
        with pytest.raises(UpstreamStatusError) as exc_info:
            raise_for_status(httpx.Response(status), "test")
        assert exc_info.value.status_code == status


class TestParseRetryAfter:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, None),
            ("", None),
            ("30", 30.0),
            ("1.5", 1.5),
            ("-1", None),
            ("Wed, 21 Oct 2026 07:28:00 GMT", None),
        ],
    )
    def test_values(self, value, expected):
        assert parse_retry_after(value) == expected
