"""
Cache Manager Service

Namespaced, tag-aware cache over the key-value store. The cache is
best-effort: store failures are logged and degrade to a miss or no-op,
only failures of caller-supplied compute functions propagate.
"""

import asyncio
import inspect
import logging
import math
import time
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ...constants import (
    CLEAR_BATCH_SIZE,
    LOCK_KEY_SUFFIX,
    REFRESH_KEY_SUFFIX,
    TAG_KEY_SEGMENT,
    now_ms,
)
from ...core.config import Settings, settings as default_settings
from ...domain.cache.entities import CacheStats
from ...domain.cache.repository_interfaces import KeyValueStore
from .serialization import PayloadCodec

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")
ComputeFn = Callable[[], Union[Awaitable[T], T]]


class CacheManager:
    """
    Cache manager for one namespace.

    Keys are stored as ``<namespace>:<key>``; the members of a tag are
    tracked in the set ``<namespace>:tag:<tag>``.
    """

    def __init__(
        self,
        namespace: str,
        store: KeyValueStore,
        settings: Optional[Settings] = None,
        codec: Optional[PayloadCodec] = None,
    ):
        if not namespace or ":" in namespace:
            raise ValueError(f"Invalid cache namespace: {namespace!r}")
        self.namespace = namespace
        self.store = store
        self.settings = settings or default_settings
        self.codec = codec or PayloadCodec(
            compression_threshold=self.settings.CACHE_COMPRESSION_THRESHOLD_BYTES
        )
        self._stats = CacheStats()

    def make_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def tag_key(self, tag: str) -> str:
        return f"{self.namespace}:{TAG_KEY_SEGMENT}:{tag}"

    def _record_error(self, operation: str, key: str, error: Exception) -> None:
        self._stats.errors += 1
        logger.error(
            f"Cache {operation} error for key {key}: {error}",
            extra={
                "namespace": self.namespace,
                "operation": operation,
                "key": key,
                "error_type": type(error).__name__,
            },
        )

    def _finish(self, started: float) -> None:
        self._stats.record_timing((time.perf_counter() - started) * 1000)

    async def get(self, key: str) -> Optional[Any]:
        """
        Get cached value.

        Returns:
            Deserialized value, or None on miss, store failure or
            undecodable payload
        """
        started = time.perf_counter()
        self._stats.operations += 1

        with tracer.start_as_current_span("cache.get") as span:
            span.set_attribute("cache.namespace", self.namespace)
            span.set_attribute("cache.key", key)
            try:
                payload = await self.store.get(self.make_key(key))
                if payload is None:
                    self._stats.misses += 1
                    span.set_attribute("cache.hit", False)
                    return None

                value = self.codec.decode(payload)
                self._stats.hits += 1
                span.set_attribute("cache.hit", True)
                return value

            except Exception as e:
                self._stats.misses += 1
                self._record_error("get", key, e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                return None

            finally:
                self._finish(started)

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> None:
        """
        Store value with optional TTL (seconds) and tags.

        Each tag index gets the namespaced key added and its expiry
        extended to ``ttl + CACHE_TAG_TTL_GRACE_SECONDS``, never shortened,
        so the index outlives its members. A member without TTL makes the
        index persistent.
        """
        started = time.perf_counter()
        self._stats.operations += 1
        cache_key = self.make_key(key)

        with tracer.start_as_current_span("cache.set") as span:
            span.set_attribute("cache.namespace", self.namespace)
            span.set_attribute("cache.key", key)
            span.set_attribute("cache.tag_count", len(tags or []))
            try:
                payload = self.codec.encode(value)
                await self.store.set(cache_key, payload, ex=ttl)

                for tag in tags or []:
                    tag_key = self.tag_key(tag)
                    remaining = await self.store.remaining_ttl(tag_key)
                    await self.store.sadd(tag_key, cache_key)
                    await self._extend_tag_expiry(tag_key, ttl, remaining)

            except Exception as e:
                self._record_error("set", key, e)
                span.set_status(Status(StatusCode.ERROR, str(e)))

            finally:
                self._finish(started)

    async def delete(self, key: str) -> None:
        """Remove a single key."""
        started = time.perf_counter()
        self._stats.operations += 1
        try:
            await self.store.delete(self.make_key(key))
        except Exception as e:
            self._record_error("delete", key, e)
        finally:
            self._finish(started)

    async def invalidate_tag(self, tag: str) -> int:
        """
        Delete every key registered under ``tag`` and the tag index itself.

        Returns:
            Number of member keys found in the index (0 when absent)
        """
        started = time.perf_counter()
        self._stats.operations += 1
        tag_key = self.tag_key(tag)

        with tracer.start_as_current_span("cache.invalidate_tag") as span:
            span.set_attribute("cache.namespace", self.namespace)
            span.set_attribute("cache.tag", tag)
            try:
                members = await self.store.smembers(tag_key)
                if not members:
                    return 0

                await self.store.delete(*sorted(members))
                await self.store.delete(tag_key)

                span.set_attribute("cache.invalidated_count", len(members))
                logger.info(
                    f"Cache tag invalidated: {self.namespace}:{tag}",
                    extra={
                        "namespace": self.namespace,
                        "tag": tag,
                        "count": len(members),
                    },
                )
                return len(members)

            except Exception as e:
                self._record_error("invalidate_tag", tag_key, e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                return 0

            finally:
                self._finish(started)

    async def clear(self) -> int:
        """Delete every key under this namespace. Administrative use only."""
        started = time.perf_counter()
        self._stats.operations += 1
        cleared = 0
        batch: List[str] = []

        try:
            async for key in self.store.scan_keys(f"{self.namespace}:*"):
                batch.append(key)
                if len(batch) >= CLEAR_BATCH_SIZE:
                    cleared += await self.store.delete(*batch)
                    batch = []
            if batch:
                cleared += await self.store.delete(*batch)

            logger.info(
                f"Cache namespace cleared: {self.namespace}",
                extra={"namespace": self.namespace, "count": cleared},
            )

        except Exception as e:
            self._record_error("clear", f"{self.namespace}:*", e)

        finally:
            self._finish(started)

        return cleared

    async def remember(
        self,
        key: str,
        compute: ComputeFn,
        ttl: Optional[int] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> Any:
        """Return cached value, or compute, store and return it on a miss."""
        cached = await self.get(key)
        if cached is not None:
            return cached

        result = await _call(compute)
        await self.set(key, result, ttl=ttl, tags=tags)
        return result

    async def remember_forever(
        self,
        key: str,
        compute: ComputeFn,
        refresh_interval: int = 3600,
        ttl: Optional[int] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> Any:
        """
        Stale-while-revalidate read with synchronous fallback.

        Recomputes when nothing is cached or ``refresh_interval`` seconds
        have passed since the last recompute (tracked in ``<key>:refresh``).
        Recompute runs under the ``<key>:lock`` key so one worker refreshes
        at a time. If recompute fails the stale value is returned when one
        exists; otherwise the compute error propagates.
        """
        refresh_key = self.make_key(f"{key}:{REFRESH_KEY_SUFFIX}")
        lock_key = self.make_key(f"{key}:{LOCK_KEY_SUFFIX}")
        lock_seconds = self.settings.CACHE_REFRESH_LOCK_SECONDS
        retry_delay = self.settings.CACHE_REFRESH_RETRY_DELAY_SECONDS
        max_waits = (
            math.ceil(lock_seconds / retry_delay) if retry_delay > 0 else 0
        )
        waits = 0

        while True:
            cached = await self.get(key)
            last_refresh = await self._read_marker(refresh_key)
            now = now_ms()

            needs_refresh = (
                cached is None
                or last_refresh is None
                or now - last_refresh > refresh_interval * 1000
            )
            if not needs_refresh:
                return cached

            locked = await self._acquire_lock(lock_key, lock_seconds)
            if locked or waits >= max_waits:
                break

            # Another worker is recomputing
            if cached is not None:
                logger.info(
                    f"Refresh lock busy for {self.make_key(key)}, serving stale value"
                )
                return cached

            waits += 1
            await asyncio.sleep(retry_delay)

        try:
            try:
                result = await _call(compute)
            except Exception as e:
                if cached is not None:
                    logger.warning(
                        f"Cache regeneration failed for {self.make_key(key)}, serving stale value: {e}",
                        extra={"namespace": self.namespace, "key": key},
                    )
                    return cached
                raise

            await self.set(key, result, ttl=ttl, tags=tags)
            await self._write_marker(refresh_key, now_ms())
            return result

        finally:
            if locked:
                await self._release_lock(lock_key)

    async def get_many(self, keys: Iterable[str]) -> List[Optional[Any]]:
        """Get several keys; order of results follows ``keys``."""
        return list(await asyncio.gather(*(self.get(key) for key in keys)))

    async def set_many(
        self,
        entries: Union[Mapping[str, Any], Iterable[Tuple[str, Any]]],
        ttl: Optional[int] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> None:
        """Store several values with shared TTL and tags."""
        items = entries.items() if isinstance(entries, Mapping) else entries
        await asyncio.gather(
            *(self.set(key, value, ttl=ttl, tags=tags) for key, value in items)
        )

    def get_stats(self) -> Dict[str, Any]:
        """Operation counters for this namespace."""
        return {"namespace": self.namespace, **self._stats.to_dict()}

    @property
    def stats(self) -> CacheStats:
        return self._stats

    async def get_store_info(self) -> Optional[Dict[str, Any]]:
        """Store server statistics, or None if unavailable."""
        try:
            return await self.store.info()
        except Exception as e:
            logger.error(f"Failed to get store stats: {e}")
            return None

    async def _extend_tag_expiry(
        self, tag_key: str, ttl: Optional[int], remaining: int
    ) -> None:
        # remaining was read before SADD: -2 new index, -1 already persistent
        if not ttl:
            if remaining >= 0:
                await self.store.persist(tag_key)
            return

        target = ttl + self.settings.CACHE_TAG_TTL_GRACE_SECONDS
        if remaining == -2 or 0 <= remaining < target:
            await self.store.expire(tag_key, target)

    async def _read_marker(self, key: str) -> Optional[int]:
        try:
            raw = await self.store.get(key)
            return int(raw) if raw is not None else None
        except Exception as e:
            self._record_error("read_marker", key, e)
            return None

    async def _write_marker(self, key: str, value: int) -> None:
        try:
            await self.store.set(key, str(value))
        except Exception as e:
            self._record_error("write_marker", key, e)

    async def _acquire_lock(self, key: str, seconds: int) -> bool:
        # A store failure must not block recompute
        try:
            return await self.store.set(key, "1", ex=seconds, nx=True)
        except Exception as e:
            self._record_error("acquire_lock", key, e)
            return True

    async def _release_lock(self, key: str) -> None:
        try:
            await self.store.delete(key)
        except Exception as e:
            self._record_error("release_lock", key, e)


async def _call(compute: ComputeFn) -> Any:
    result = compute()
    if inspect.isawaitable(result):
        result = await result
    return result
