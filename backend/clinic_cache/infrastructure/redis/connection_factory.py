"""
Redis Connection Factory

Connection pool management for the cache store. Builds one shared pool
from settings, enables OpenTelemetry instrumentation and exposes health
information for monitoring.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from opentelemetry import trace
from opentelemetry.instrumentation.redis import RedisInstrumentor
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import (
    AuthenticationError as RedisAuthError,
    RedisError,
)

from ...core.config import Settings, settings as default_settings
from .circuit_breaker import CircuitBreakerConfig, StoreCircuitBreaker
from .exceptions import RedisConfigurationException, RedisConnectionException

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_instrumented = False


def _instrument_redis() -> None:
    global _instrumented
    if _instrumented:
        return
    try:
        RedisInstrumentor().instrument()
        _instrumented = True
        logger.info("Redis OpenTelemetry instrumentation enabled")
    except Exception as e:
        logger.warning(f"Failed to enable Redis OpenTelemetry instrumentation: {e}")


class RedisConnectionFactory:
    """
    Factory for the Redis client used by the cache store.

    Owns the connection pool and the circuit breaker guarding every
    store round trip.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None
        self._lock = asyncio.Lock()
        self.circuit_breaker = StoreCircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=self.settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
                recovery_timeout=float(self.settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT),
                operation_timeout=self.settings.REDIS_OPERATION_TIMEOUT,
            )
        )
        _instrument_redis()

    def _connection_kwargs(self) -> Dict[str, Any]:
        parsed_url = urlparse(self.settings.REDIS_URL)
        if parsed_url.scheme not in ("redis", "rediss"):
            raise RedisConfigurationException(
                "REDIS_URL must use the redis:// or rediss:// scheme",
                config_key="REDIS_URL",
                config_value=self.settings.REDIS_URL,
            )

        db = 0
        if parsed_url.path and parsed_url.path.strip("/"):
            try:
                db = int(parsed_url.path.strip("/"))
            except ValueError as e:
                raise RedisConfigurationException(
                    "REDIS_URL database must be an integer",
                    config_key="REDIS_URL",
                    config_value=self.settings.REDIS_URL,
                    original_error=e,
                )

        # Payloads are binary (codec header + optional gzip), so responses
        # stay undecoded and the store decodes text values itself.
        return {
            "host": parsed_url.hostname or "localhost",
            "port": parsed_url.port or 6379,
            "db": db,
            "username": parsed_url.username,
            "password": parsed_url.password,
            "decode_responses": False,
            "socket_connect_timeout": self.settings.REDIS_CONNECTION_TIMEOUT,
            "socket_timeout": self.settings.REDIS_OPERATION_TIMEOUT,
            "retry_on_timeout": True,
            "health_check_interval": self.settings.REDIS_HEALTH_CHECK_INTERVAL,
            "max_connections": self.settings.REDIS_MAX_CONNECTIONS,
        }

    async def get_client(self) -> Redis:
        """Return the shared client, creating the pool on first use."""
        if self._client is not None:
            return self._client

        async with self._lock:
            if self._client is None:
                connection_kwargs = self._connection_kwargs()
                self._pool = ConnectionPool(**connection_kwargs)
                self._client = Redis(connection_pool=self._pool)
                logger.info(
                    "Redis connection pool created",
                    extra={
                        "host": connection_kwargs["host"],
                        "port": connection_kwargs["port"],
                        "max_connections": connection_kwargs["max_connections"],
                    },
                )
        return self._client

    async def ping(self) -> None:
        """Verify connectivity; raise a store exception on failure."""
        client = await self.get_client()
        try:
            await client.ping()
        except RedisAuthError as e:
            raise RedisConnectionException(
                message="Redis authentication failed", original_error=e
            )
        except (RedisError, OSError) as e:
            raise RedisConnectionException(
                message="Redis connection test failed", original_error=e
            )

    async def health_check(self) -> Dict[str, Any]:
        """Ping Redis and report latency and breaker status."""
        with tracer.start_as_current_span("redis.health_check"):
            health_status: Dict[str, Any] = {
                "status": "unhealthy",
                "timestamp": time.time(),
                "circuit_breaker": self.circuit_breaker.get_status(),
            }
            try:
                start_time = time.time()
                await self.ping()
                health_status["status"] = "healthy"
                health_status["response_time_ms"] = round(
                    (time.time() - start_time) * 1000, 2
                )
            except RedisConnectionException as e:
                health_status["error"] = e.message
                logger.warning(f"Redis health check failed: {e.message}")
            return health_status

    async def close(self) -> None:
        """Close the client and disconnect the pool."""
        async with self._lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None
            if self._pool is not None:
                await self._pool.disconnect()
                self._pool = None
            logger.info("Redis connection factory closed")
