"""
Clinic Cache

Tag-based cache invalidation and distributed session layer for the
clinic application.
"""

from .container import CacheServices, build_cache_services, create_redis_store

__all__ = [
    "CacheServices",
    "build_cache_services",
    "create_redis_store",
]
