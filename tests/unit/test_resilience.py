"""
Unit tests for retry, circuit breaker and timeout helpers.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from review_gateway.utils.resilience import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    CircuitState,
    call_with_timeout,
    retry_with_backoff,
)


def flaky(failures, exc=ConnectionError, result="ok"):
    """Coroutine function that raises `failures` times, then returns."""
    calls = []

    async def fetch():
        calls.append(1)
        if len(calls) <= failures:
            raise exc("down")
        return result

    return fetch, calls


class TestRetryWithBackoff:
    """Test the retry decorator."""

    @pytest.mark.asyncio
    async def test_succeeds_after_retry(self):
        fetch, calls = flaky(1)
        wrapped = retry_with_backoff(max_retries=3, base_delay=0.01)(fetch)

        assert await wrapped() == "ok"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        fetch, calls = flaky(5)
        wrapped = retry_with_backoff(max_retries=2, base_delay=0.01)(fetch)

        with pytest.raises(ConnectionError):
            await wrapped()
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_unlisted_exception_not_retried(self):
        fetch, calls = flaky(5, exc=ValueError)
        wrapped = retry_with_backoff(max_retries=3, base_delay=0.01, exceptions=(ConnectionError,))(fetch)

        with pytest.raises(ValueError):
            await wrapped()
        assert len(calls) == 1


class TestCircuitBreaker:
    """Test circuit breaker state changes."""

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, timeout=60, name="test")
        failing = AsyncMock(side_effect=RuntimeError("down"))

        for _ in range(2):
            with pytest.raises(RuntimeError):
                await breaker.call(failing)

        assert breaker.get_state() == CircuitState.OPEN
        with pytest.raises(CircuitBreakerOpenError):
            await breaker.call(AsyncMock(return_value="ok"))

    @pytest.mark.asyncio
    async def test_success_resets_failures(self):
        breaker = CircuitBreaker(failure_threshold=2, name="test")

        with pytest.raises(RuntimeError):
            await breaker.call(AsyncMock(side_effect=RuntimeError("down")))
        await breaker.call(AsyncMock(return_value="ok"))

        assert breaker.failure_count == 0
        assert breaker.get_state() == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_recovers(self):
        breaker = CircuitBreaker(failure_threshold=1, timeout=0, half_open_max_calls=1, name="test")

        with pytest.raises(RuntimeError):
            await breaker.call(AsyncMock(side_effect=RuntimeError("down")))
        assert breaker.get_state() == CircuitState.OPEN

        await asyncio.sleep(0.01)
        assert await breaker.call(AsyncMock(return_value="ok")) == "ok"
        assert breaker.get_state() == CircuitState.CLOSED

    def test_reset(self):
        breaker = CircuitBreaker(name="test")
        breaker.state = CircuitState.OPEN
        breaker.failure_count = 9

        breaker.reset()

        assert breaker.get_state() == CircuitState.CLOSED
        assert breaker.failure_count == 0


class TestCallWithTimeout:
    """Test the enrichment timeout helper."""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        assert await call_with_timeout(AsyncMock(return_value="main"), 1.0, "default branch") == "main"

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self):
        async def slow():
            await asyncio.sleep(1)
            return "late"

        assert await call_with_timeout(slow, 0.01, "slow call") is None

    @pytest.mark.asyncio
    async def test_error_returns_none(self):
        assert await call_with_timeout(AsyncMock(side_effect=RuntimeError("boom")), 1.0, "failing call") is None
