"""
Tagged Cache Registry

One Cache Manager per entity family plus key/tag builders for the
common cache entries of the clinic application.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from ...constants import (
    ANALYTICS_NAMESPACE,
    APPOINTMENTS_NAMESPACE,
    CACHE_NAMESPACES,
    DAILY_SCHEDULE_TAG,
    DASHBOARD_TAG,
    DEFAULT_NAMESPACE,
    PATIENTS_NAMESPACE,
    REPORTS_NAMESPACE,
)
from ...core.config import Settings, settings as default_settings
from ...domain.cache.repository_interfaces import KeyValueStore
from .cache_manager import CacheManager
from .serialization import PayloadCodec

logger = logging.getLogger(__name__)


class CacheRegistry:
    """Named cache managers sharing one store."""

    def __init__(
        self,
        store: KeyValueStore,
        settings: Optional[Settings] = None,
        namespaces: Tuple[str, ...] = CACHE_NAMESPACES,
    ):
        self.store = store
        self.settings = settings or default_settings
        codec = PayloadCodec(
            compression_threshold=self.settings.CACHE_COMPRESSION_THRESHOLD_BYTES
        )
        if DEFAULT_NAMESPACE not in namespaces:
            namespaces = tuple(namespaces) + (DEFAULT_NAMESPACE,)

        self._managers: Dict[str, CacheManager] = {
            namespace: CacheManager(namespace, store, self.settings, codec)
            for namespace in namespaces
        }

    def get(self, namespace: str) -> CacheManager:
        """
        Get the manager for ``namespace``.

        Unknown namespaces fall back to the default manager.
        """
        manager = self._managers.get(namespace)
        if manager is None:
            logger.warning(
                f"Unknown cache namespace {namespace}, using {DEFAULT_NAMESPACE}",
                extra={"namespace": namespace},
            )
            return self._managers[DEFAULT_NAMESPACE]
        return manager

    def __contains__(self, namespace: str) -> bool:
        return namespace in self._managers

    def all(self) -> List[CacheManager]:
        """All managers in registration order."""
        return list(self._managers.values())

    @property
    def namespaces(self) -> List[str]:
        return list(self._managers)

    def system_stats(self) -> Dict[str, Any]:
        """Per-namespace stats plus aggregate totals."""
        per_namespace = {
            name: manager.get_stats() for name, manager in self._managers.items()
        }
        hits = sum(stats["hits"] for stats in per_namespace.values())
        misses = sum(stats["misses"] for stats in per_namespace.values())
        reads = hits + misses

        return {
            "namespaces": per_namespace,
            "totals": {
                "hits": hits,
                "misses": misses,
                "operations": sum(s["operations"] for s in per_namespace.values()),
                "errors": sum(s["errors"] for s in per_namespace.values()),
                "hit_rate": round((hits / reads) * 100, 2) if reads else 0.0,
            },
        }


class CachePatterns:
    """Key and tag builders for common cache entries."""

    @staticmethod
    def patient(patient_id: str) -> Dict[str, Any]:
        return {
            "namespace": PATIENTS_NAMESPACE,
            "key": f"patient:{patient_id}",
            "tags": [PATIENTS_NAMESPACE, f"patient:{patient_id}"],
        }

    @staticmethod
    def patient_appointments(patient_id: str) -> Dict[str, Any]:
        return {
            "namespace": APPOINTMENTS_NAMESPACE,
            "key": f"patient:{patient_id}:appointments",
            "tags": [
                APPOINTMENTS_NAMESPACE,
                PATIENTS_NAMESPACE,
                f"patient:{patient_id}",
            ],
        }

    @staticmethod
    def appointment(appointment_id: str) -> Dict[str, Any]:
        return {
            "namespace": APPOINTMENTS_NAMESPACE,
            "key": f"appointment:{appointment_id}",
            "tags": [APPOINTMENTS_NAMESPACE, f"appointment:{appointment_id}"],
        }

    @staticmethod
    def daily_appointments(date: str) -> Dict[str, Any]:
        return {
            "namespace": APPOINTMENTS_NAMESPACE,
            "key": f"appointments:daily:{date}",
            "tags": [APPOINTMENTS_NAMESPACE, DAILY_SCHEDULE_TAG],
        }

    @staticmethod
    def patient_report(patient_id: str, report_type: str) -> Dict[str, Any]:
        return {
            "namespace": REPORTS_NAMESPACE,
            "key": f"report:{patient_id}:{report_type}",
            "tags": [REPORTS_NAMESPACE, f"patient:{patient_id}", report_type],
        }

    @staticmethod
    def dashboard_metrics(timeframe: str) -> Dict[str, Any]:
        return {
            "namespace": ANALYTICS_NAMESPACE,
            "key": f"analytics:dashboard:{timeframe}",
            "tags": [ANALYTICS_NAMESPACE, DASHBOARD_TAG],
        }
