"""
Model cache invalidation.

Maps a domain model name to the cache namespace holding its data. An
entity id narrows invalidation to ``<entity>:<id>``; without one the
whole collection tag is dropped.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from ...constants import (
    ANALYTICS_NAMESPACE,
    APPOINTMENTS_NAMESPACE,
    PATIENTS_NAMESPACE,
    REPORTS_NAMESPACE,
)
from ..cache.registry import CacheRegistry
from ..sessions.session_manager import SessionManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelCacheBinding:
    """Where a model's cached data lives."""

    namespace: str
    collection_tag: str
    entity_prefix: Optional[str] = None

    def tag_for(self, entity_id: Optional[str]) -> str:
        if entity_id and self.entity_prefix:
            return f"{self.entity_prefix}:{entity_id}"
        return self.collection_tag


DEFAULT_MODEL_BINDINGS: Dict[str, ModelCacheBinding] = {
    "Patient": ModelCacheBinding(PATIENTS_NAMESPACE, PATIENTS_NAMESPACE, "patient"),
    "Appointment": ModelCacheBinding(
        APPOINTMENTS_NAMESPACE, APPOINTMENTS_NAMESPACE, "appointment"
    ),
    "Report": ModelCacheBinding(REPORTS_NAMESPACE, REPORTS_NAMESPACE),
    "Analytics": ModelCacheBinding(ANALYTICS_NAMESPACE, ANALYTICS_NAMESPACE),
}

USER_MODEL = "User"


class ModelInvalidator:
    """Invalidate cached data of a domain model, by id or collection."""

    def __init__(
        self,
        registry: CacheRegistry,
        session_manager: SessionManager,
        bindings: Optional[Dict[str, ModelCacheBinding]] = None,
    ):
        self.registry = registry
        self.session_manager = session_manager
        self.bindings = dict(DEFAULT_MODEL_BINDINGS if bindings is None else bindings)

    async def invalidate(self, model: str, entity_id: Optional[str] = None) -> None:
        if model == USER_MODEL:
            if entity_id:
                await self.session_manager.destroy_user_sessions(entity_id)
            return

        binding = self.bindings.get(model)
        if binding is None:
            logger.warning(
                f"Unknown model for cache invalidation: {model}",
                extra={"model": model},
            )
            return

        await self.registry.get(binding.namespace).invalidate_tag(
            binding.tag_for(entity_id)
        )
