"""
Unit tests for the store circuit breaker.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from clinic_cache.infrastructure.redis.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitState,
    StoreCircuitBreaker,
)
from clinic_cache.infrastructure.redis.exceptions import (
    RedisCircuitBreakerOpenException,
    RedisOperationTimeoutException,
)


@pytest.fixture
def breaker():
    return StoreCircuitBreaker(
        CircuitBreakerConfig(
            failure_threshold=3,
            recovery_timeout=30.0,
            success_threshold=2,
            operation_timeout=0.05,
        )
    )


def failing():
    return AsyncMock(side_effect=RedisConnectionError("connection refused"))


async def trip(breaker, times):
    for _ in range(times):
        with pytest.raises(RedisConnectionError):
            await breaker.call("get", failing())


class TestStoreCircuitBreaker:
    """Test breaker state transitions."""

    @pytest.mark.asyncio
    async def test_successful_call(self, breaker):
        result = await breaker.call("get", AsyncMock(return_value=b"value"))

        assert result == b"value"
        assert breaker.state == CircuitState.CLOSED
        assert breaker.metrics.successful_calls == 1

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, breaker):
        await trip(breaker, 3)

        assert breaker.state == CircuitState.OPEN
        assert breaker.metrics.circuit_opens == 1

    @pytest.mark.asyncio
    async def test_rejects_while_open(self, breaker):
        await trip(breaker, 3)
        func = AsyncMock(return_value=b"value")

        with pytest.raises(RedisCircuitBreakerOpenException):
            await breaker.call("get", func)

        func.assert_not_called()
        assert breaker.metrics.rejected_calls == 1

    @pytest.mark.asyncio
    async def test_half_open_recovery(self, breaker):
        """Test the breaker closes after enough successful trial calls."""
        await trip(breaker, 3)
        breaker.last_failure_time -= 31

        await breaker.call("get", AsyncMock(return_value=b"1"))
        assert breaker.state == CircuitState.HALF_OPEN

        await breaker.call("get", AsyncMock(return_value=b"1"))

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, breaker):
        await trip(breaker, 3)
        breaker.last_failure_time -= 31

        await trip(breaker, 1)

        assert breaker.state == CircuitState.OPEN
        assert breaker.metrics.circuit_opens == 2

    @pytest.mark.asyncio
    async def test_timeout(self, breaker):
        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(RedisOperationTimeoutException):
            await breaker.call("get", slow)

        assert breaker.metrics.timeout_calls == 1
        assert breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_unrelated_errors_not_counted(self, breaker):
        with pytest.raises(ValueError):
            await breaker.call("get", AsyncMock(side_effect=ValueError("bad value")))

        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_reset(self, breaker):
        await trip(breaker, 3)

        breaker.reset()

        assert breaker.state == CircuitState.CLOSED
        assert await breaker.call("get", AsyncMock(return_value=b"1")) == b"1"

    @pytest.mark.asyncio
    async def test_status(self, breaker):
        await breaker.call("get", AsyncMock(return_value=b"1"))
        await trip(breaker, 1)

        status = breaker.get_status()

        assert status["state"] == "closed"
        assert status["failure_count"] == 1
        assert status["metrics"]["total_calls"] == 2
        assert status["metrics"]["failure_rate"] == 0.5
