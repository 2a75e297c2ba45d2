"""
Store Circuit Breaker

Guards every key-value store round trip. After repeated connection
failures the breaker opens and calls fail fast until the recovery
timeout elapses.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    TimeoutError as RedisTimeoutError,
)

from .exceptions import (
    RedisCircuitBreakerOpenException,
    RedisOperationTimeoutException,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject calls
    HALF_OPEN = "half_open"  # Probing recovery


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    success_threshold: int = 3
    operation_timeout: float = 5.0
    failure_exceptions: tuple = (
        RedisConnectionError,
        RedisTimeoutError,
        ConnectionError,
        OSError,
    )


@dataclass
class CircuitBreakerMetrics:
    """Counters exposed through ``get_status``."""

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    timeout_calls: int = 0
    circuit_opens: int = 0

    @property
    def failure_rate(self) -> float:
        if self.total_calls == 0:
            return 0.0
        return self.failed_calls / self.total_calls


class StoreCircuitBreaker:
    """Circuit breaker wrapping coroutine factories for store operations."""

    def __init__(self, config: Optional[CircuitBreakerConfig] = None):
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.metrics = CircuitBreakerMetrics()

    async def call(
        self, operation: str, func: Callable[[], Awaitable[T]]
    ) -> T:
        """
        Run ``func()`` under breaker protection.

        Raises:
            RedisCircuitBreakerOpenException: If the circuit is open
            RedisOperationTimeoutException: If the call exceeds the timeout
        """
        self.metrics.total_calls += 1

        if self.state == CircuitState.OPEN:
            if self._should_attempt_reset():
                self._transition(CircuitState.HALF_OPEN)
            else:
                self.metrics.rejected_calls += 1
                raise RedisCircuitBreakerOpenException()

        try:
            result = await asyncio.wait_for(
                func(), timeout=self.config.operation_timeout
            )
        except asyncio.TimeoutError as e:
            self.metrics.timeout_calls += 1
            self._record_failure(operation, "timeout")
            raise RedisOperationTimeoutException(
                operation, self.config.operation_timeout
            ) from e
        except self.config.failure_exceptions as e:
            self._record_failure(operation, type(e).__name__)
            raise

        self._record_success()
        return result

    def _record_success(self) -> None:
        self.metrics.successful_calls += 1

        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.config.success_threshold:
                self._transition(CircuitState.CLOSED)
        elif self.failure_count > 0:
            self.failure_count -= 1

    def _record_failure(self, operation: str, failure_type: str) -> None:
        self.metrics.failed_calls += 1
        self.last_failure_time = time.monotonic()

        if self.state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
        elif self.state == CircuitState.CLOSED:
            self.failure_count += 1
            if self.failure_count >= self.config.failure_threshold:
                self._transition(CircuitState.OPEN)

        logger.warning(
            f"Store operation failed: {operation}",
            extra={
                "operation": operation,
                "failure_type": failure_type,
                "failure_count": self.failure_count,
                "state": self.state.value,
            },
        )

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self.state
        self.state = new_state
        self.success_count = 0
        if new_state == CircuitState.OPEN:
            self.metrics.circuit_opens += 1
        elif new_state == CircuitState.CLOSED:
            self.failure_count = 0

        logger.info(
            f"Circuit breaker {old_state.value} -> {new_state.value}",
            extra={"failure_count": self.failure_count},
        )

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return True
        return (
            time.monotonic() - self.last_failure_time
        ) >= self.config.recovery_timeout

    def get_status(self) -> Dict[str, Any]:
        """Get current circuit breaker status for monitoring."""
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "metrics": {
                "total_calls": self.metrics.total_calls,
                "successful_calls": self.metrics.successful_calls,
                "failed_calls": self.metrics.failed_calls,
                "rejected_calls": self.metrics.rejected_calls,
                "timeout_calls": self.metrics.timeout_calls,
                "circuit_opens": self.metrics.circuit_opens,
                "failure_rate": self.metrics.failure_rate,
            },
        }

    def reset(self) -> None:
        """Manually reset circuit breaker to closed state."""
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time = None
        logger.info("Circuit breaker manually reset to CLOSED state")
