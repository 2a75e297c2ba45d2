"""
Cache Invalidation Module

Rule-driven invalidation engine, default rule table and the
convenience facade used by route handlers.
"""

from .engine import CacheInvalidationEngine
from .facade import CacheInvalidation
from .model_invalidator import ModelCacheBinding, ModelInvalidator
from .rules import default_rules

__all__ = [
    "CacheInvalidationEngine",
    "CacheInvalidation",
    "ModelCacheBinding",
    "ModelInvalidator",
    "default_rules",
]
