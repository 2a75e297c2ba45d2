"""
Redis Cache Repository Implementation

Infrastructure implementation of the key-value store contract using
redis.asyncio. Every round trip runs through the connection factory's
circuit breaker and is translated into store exceptions on failure.
"""

import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Set, TypeVar

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from redis.exceptions import RedisError

from ...domain.cache.repository_interfaces import KeyValueStore, StoreValue
from ..redis.connection_factory import RedisConnectionFactory
from ..redis.exceptions import RedisConnectionException, RedisException

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class RedisKeyValueStore(KeyValueStore):
    """Redis implementation of the key-value store."""

    def __init__(self, connection_factory: RedisConnectionFactory):
        self.connection_factory = connection_factory

    async def _execute(
        self, operation: str, key: str, func: Callable[[Any], Awaitable[T]]
    ) -> T:
        with tracer.start_as_current_span(f"store.{operation}") as span:
            span.set_attribute("store.key", key)
            client = await self.connection_factory.get_client()
            try:
                return await self.connection_factory.circuit_breaker.call(
                    operation, lambda: func(client)
                )
            except RedisException as e:
                span.set_status(Status(StatusCode.ERROR, e.message))
                raise
            except (RedisError, OSError) as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise RedisConnectionException(
                    message=f"Redis {operation} failed for {key}: {e}",
                    original_error=e,
                )

    async def get(self, key: str) -> Optional[bytes]:
        return await self._execute("get", key, lambda client: client.get(key))

    async def set(
        self,
        key: str,
        value: StoreValue,
        ex: Optional[int] = None,
        nx: bool = False,
    ) -> bool:
        result = await self._execute(
            "set", key, lambda client: client.set(key, value, ex=ex, nx=nx)
        )
        return bool(result)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._execute(
            "delete", keys[0], lambda client: client.delete(*keys)
        )

    async def sadd(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return await self._execute(
            "sadd", key, lambda client: client.sadd(key, *members)
        )

    async def smembers(self, key: str) -> Set[str]:
        members = await self._execute(
            "smembers", key, lambda client: client.smembers(key)
        )
        return {_decode(member) for member in members}

    async def expire(self, key: str, seconds: int) -> bool:
        result = await self._execute(
            "expire", key, lambda client: client.expire(key, seconds)
        )
        return bool(result)

    async def remaining_ttl(self, key: str) -> int:
        return int(
            await self._execute("ttl", key, lambda client: client.ttl(key))
        )

    async def persist(self, key: str) -> bool:
        result = await self._execute(
            "persist", key, lambda client: client.persist(key)
        )
        return bool(result)

    async def scan_keys(self, pattern: str, count: int = 100) -> AsyncIterator[str]:
        # Cursor-based SCAN, one breaker-guarded round trip per page
        cursor = 0
        while True:
            cursor, keys = await self._execute(
                "scan",
                pattern,
                lambda client, c=cursor: client.scan(c, match=pattern, count=count),
            )
            for key in keys:
                yield _decode(key)
            if cursor == 0:
                break

    async def info(self) -> Dict[str, Any]:
        return await self._execute("info", "*", lambda client: client.info())

    async def close(self) -> None:
        await self.connection_factory.close()
