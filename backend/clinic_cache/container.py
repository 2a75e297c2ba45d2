"""
Cache Services Wiring

Builds the cache registry, session manager, invalidation engine, facade
and metrics collector around one store. Application startup owns the
container and passes its members to the code that needs them.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .constants import SESSIONS_NAMESPACE
from .core.config import Settings, settings as default_settings
from .domain.cache.repository_interfaces import KeyValueStore
from .infrastructure.redis.connection_factory import RedisConnectionFactory
from .infrastructure.repositories.cache_repository import RedisKeyValueStore
from .monitoring.cache_metrics import CacheMetricsCollector
from .services.cache.registry import CacheRegistry
from .services.invalidation.engine import CacheInvalidationEngine
from .services.invalidation.facade import CacheInvalidation
from .services.sessions.cookies import SessionCookies
from .services.sessions.session_manager import SessionManager

logger = logging.getLogger(__name__)


@dataclass
class CacheServices:
    """Process-wide cache services sharing one store."""

    settings: Settings
    store: KeyValueStore
    registry: CacheRegistry
    sessions: SessionManager
    cookies: SessionCookies
    invalidator: CacheInvalidationEngine
    invalidation: CacheInvalidation
    metrics: CacheMetricsCollector

    async def start(self, collect_metrics: bool = True) -> None:
        """Start the invalidation sweep and, optionally, metrics collection."""
        await self.invalidator.start()
        if collect_metrics:
            await self.metrics.start_collection()
        logger.info("Cache services started")

    async def close(self) -> None:
        """Stop background work and close the store."""
        await self.metrics.stop_collection()
        await self.invalidator.stop()
        await self.store.close()
        logger.info("Cache services closed")


def create_redis_store(settings: Optional[Settings] = None) -> RedisKeyValueStore:
    """Redis-backed store with its own connection pool and circuit breaker."""
    return RedisKeyValueStore(RedisConnectionFactory(settings or default_settings))


def build_cache_services(
    store: KeyValueStore, settings: Optional[Settings] = None
) -> CacheServices:
    """Build the cache services around ``store``."""
    settings = settings or default_settings

    registry = CacheRegistry(store, settings)
    sessions = SessionManager(registry.get(SESSIONS_NAMESPACE), settings)
    invalidator = CacheInvalidationEngine(registry, sessions, settings)

    return CacheServices(
        settings=settings,
        store=store,
        registry=registry,
        sessions=sessions,
        cookies=SessionCookies(settings),
        invalidator=invalidator,
        invalidation=CacheInvalidation(invalidator),
        metrics=CacheMetricsCollector(registry, invalidator, sessions, settings),
    )
