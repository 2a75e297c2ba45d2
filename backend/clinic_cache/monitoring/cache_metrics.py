"""
Cache Metrics Collector

Aggregates per-namespace cache statistics, invalidation engine state and
session statistics into periodic summaries. Summaries are kept in a
bounded history, exported as Prometheus gauges and evaluated against
threshold alert rules.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

from ..constants import DEFAULT_NAMESPACE, now_ms
from ..core.config import Settings, settings as default_settings
from ..services.cache.registry import CacheRegistry
from ..services.invalidation.engine import CacheInvalidationEngine
from ..services.sessions.session_manager import SessionManager

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AlertRule:
    """Threshold rule over a dotted path into a metrics summary."""

    metric: str
    condition: str  # "above" or "below"
    threshold: float
    severity: str  # "low", "medium", "high", "critical"
    description: str
    enabled: bool = True

    def __post_init__(self) -> None:
        if self.condition not in ("above", "below"):
            raise ValueError(f"Unsupported alert condition: {self.condition}")

    @property
    def id(self) -> str:
        return f"{self.metric}:{self.condition}:{self.threshold:g}"

    def breached(self, value: float) -> bool:
        if self.condition == "above":
            return value > self.threshold
        return value < self.threshold


@dataclass
class MetricAlert:
    """Alert raised by a rule; at most one unresolved alert per rule."""

    rule: AlertRule
    value: float
    timestamp: int = field(default_factory=now_ms)
    resolved: bool = False
    resolved_at: Optional[int] = None

    @property
    def id(self) -> str:
        return f"{self.rule.id}-{self.timestamp}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "metric": self.rule.metric,
            "condition": self.rule.condition,
            "threshold": self.rule.threshold,
            "severity": self.rule.severity,
            "description": self.rule.description,
            "value": self.value,
            "timestamp": self.timestamp,
            "resolved": self.resolved,
            "resolved_at": self.resolved_at,
        }


DEFAULT_ALERT_RULES = (
    AlertRule("overall.hit_rate", "below", 50, "medium", "Cache hit rate is below 50%"),
    AlertRule("overall.hit_rate", "below", 30, "high", "Cache hit rate is critically low"),
    AlertRule(
        "overall.avg_response_time_ms", "above", 100, "medium", "Cache response time is high"
    ),
    AlertRule("overall.error_rate", "above", 5, "high", "Cache error rate is elevated"),
    AlertRule(
        "invalidation.queue_size",
        "above",
        100,
        "medium",
        "Cache invalidation queue is backing up",
    ),
)


class CacheMetricsCollector:
    """Collects cache metrics and raises threshold alerts."""

    def __init__(
        self,
        registry: CacheRegistry,
        engine: CacheInvalidationEngine,
        session_manager: SessionManager,
        settings: Optional[Settings] = None,
        alert_rules: Optional[List[AlertRule]] = None,
    ):
        self.cache_registry = registry
        self.engine = engine
        self.session_manager = session_manager
        self.settings = settings or default_settings

        self.alert_rules: List[AlertRule] = list(
            DEFAULT_ALERT_RULES if alert_rules is None else alert_rules
        )
        self._alerts: List[MetricAlert] = []
        self._history: Deque[Dict[str, Any]] = deque(
            maxlen=self.settings.METRICS_HISTORY_SIZE
        )
        self._collection_task: Optional[asyncio.Task] = None

        self._setup_prometheus_metrics()

    def _setup_prometheus_metrics(self) -> None:
        """Setup Prometheus metrics for the cache layer."""
        self.registry = CollectorRegistry()

        self.prom_cache_hit_rate = Gauge(
            "clinic_cache_hit_rate",
            "Cache hit rate per namespace (0-100)",
            ["namespace"],
            registry=self.registry,
        )

        self.prom_cache_operations = Gauge(
            "clinic_cache_operations",
            "Cache operations performed per namespace",
            ["namespace"],
            registry=self.registry,
        )

        self.prom_cache_errors = Gauge(
            "clinic_cache_errors",
            "Cache store errors per namespace",
            ["namespace"],
            registry=self.registry,
        )

        self.prom_cache_response_time_ms = Gauge(
            "clinic_cache_avg_response_time_ms",
            "Average cache operation time in milliseconds",
            ["namespace"],
            registry=self.registry,
        )

        self.prom_invalidation_queue_size = Gauge(
            "clinic_cache_invalidation_queue_size",
            "Events waiting in the invalidation queue",
            registry=self.registry,
        )

        self.prom_active_sessions = Gauge(
            "clinic_cache_active_sessions",
            "Live sessions known to this process",
            registry=self.registry,
        )

        self.prom_alerts_total = Counter(
            "clinic_cache_alerts_total",
            "Total number of cache alerts raised",
            ["severity"],
            registry=self.registry,
        )

    async def collect_metrics(self) -> Dict[str, Any]:
        """Collect one metrics summary, record it and evaluate alerts."""
        started = now_ms()

        managers = {
            manager.namespace: manager.get_stats()
            for manager in self.cache_registry.all()
        }
        hits = sum(stats["hits"] for stats in managers.values())
        misses = sum(stats["misses"] for stats in managers.values())
        operations = sum(stats["operations"] for stats in managers.values())
        errors = sum(stats["errors"] for stats in managers.values())
        response_times = [
            stats["avg_response_time_ms"]
            for stats in managers.values()
            if stats["avg_response_time_ms"] > 0
        ]
        reads = hits + misses

        session_stats = await self.session_manager.get_session_stats()
        session_stats.pop("cache_stats", None)

        summary = {
            "timestamp": now_ms(),
            "overall": {
                # None until the first read
                "hit_rate": round((hits / reads) * 100, 2) if reads else None,
                "total_operations": operations,
                "total_hits": hits,
                "total_misses": misses,
                "avg_response_time_ms": round(
                    sum(response_times) / len(response_times), 2
                )
                if response_times
                else 0.0,
                "error_rate": round((errors / operations) * 100, 2)
                if operations
                else 0.0,
            },
            "managers": managers,
            "store": await self.cache_registry.get(DEFAULT_NAMESPACE).get_store_info(),
            "invalidation": self.engine.get_stats(),
            "session": session_stats,
        }

        self._history.append(summary)
        self._export(summary)
        self.check_alerts(summary)

        logger.debug(
            "Cache metrics collected",
            hit_rate=summary["overall"]["hit_rate"],
            operations=operations,
            collection_time_ms=now_ms() - started,
        )
        return summary

    def _export(self, summary: Dict[str, Any]) -> None:
        for namespace, stats in summary["managers"].items():
            self.prom_cache_hit_rate.labels(namespace=namespace).set(stats["hit_rate"])
            self.prom_cache_operations.labels(namespace=namespace).set(
                stats["operations"]
            )
            self.prom_cache_errors.labels(namespace=namespace).set(stats["errors"])
            self.prom_cache_response_time_ms.labels(namespace=namespace).set(
                stats["avg_response_time_ms"]
            )
        self.prom_invalidation_queue_size.set(summary["invalidation"]["queue_size"])
        self.prom_active_sessions.set(summary["session"]["total_sessions"])

    def check_alerts(self, summary: Dict[str, Any]) -> None:
        """Raise or resolve alerts for every enabled rule."""
        for rule in self.alert_rules:
            if not rule.enabled:
                continue

            value = self._metric_value(summary, rule.metric)
            if value is None:
                continue

            if rule.breached(value):
                self._trigger_alert(rule, value)
            else:
                self._resolve_alert(rule)

    @staticmethod
    def _metric_value(summary: Dict[str, Any], path: str) -> Optional[float]:
        value: Any = summary
        for part in path.split("."):
            if not isinstance(value, dict) or part not in value:
                return None
            value = value[part]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)

    def _active_alert(self, rule: AlertRule) -> Optional[MetricAlert]:
        for alert in self._alerts:
            if alert.rule.id == rule.id and not alert.resolved:
                return alert
        return None

    def _trigger_alert(self, rule: AlertRule, value: float) -> None:
        if self._active_alert(rule) is not None:
            return

        self._alerts.append(MetricAlert(rule=rule, value=value))
        self.prom_alerts_total.labels(severity=rule.severity).inc()
        logger.warning(
            "Cache alert triggered",
            metric=rule.metric,
            value=value,
            threshold=rule.threshold,
            condition=rule.condition,
            severity=rule.severity,
        )

    def _resolve_alert(self, rule: AlertRule) -> None:
        alert = self._active_alert(rule)
        if alert is None:
            return

        alert.resolved = True
        alert.resolved_at = now_ms()
        logger.info(
            "Cache alert resolved",
            metric=rule.metric,
            duration_ms=alert.resolved_at - alert.timestamp,
        )

    def add_alert_rule(self, rule: AlertRule) -> None:
        self.alert_rules.append(rule)

    def get_metrics_history(self, minutes: int = 60) -> List[Dict[str, Any]]:
        """Summaries collected within the last ``minutes``."""
        cutoff = now_ms() - minutes * 60 * 1000
        return [summary for summary in self._history if summary["timestamp"] >= cutoff]

    def get_active_alerts(self) -> List[MetricAlert]:
        return [alert for alert in self._alerts if not alert.resolved]

    def get_all_alerts(self, limit: int = 100) -> List[MetricAlert]:
        """Most recent alerts first, resolved ones included."""
        return sorted(self._alerts, key=lambda alert: alert.timestamp, reverse=True)[
            :limit
        ]

    def export_prometheus(self) -> str:
        return generate_latest(self.registry).decode("utf-8")

    async def start_collection(self) -> None:
        """Start background metrics collection."""
        if self._collection_task is None:
            self._collection_task = asyncio.create_task(self._collection_loop())
            logger.info(
                "Cache metrics collection started",
                interval_seconds=self.settings.METRICS_COLLECTION_INTERVAL_SECONDS,
            )

    async def stop_collection(self) -> None:
        """Stop background metrics collection."""
        if self._collection_task:
            self._collection_task.cancel()
            try:
                await self._collection_task
            except asyncio.CancelledError:
                pass
            self._collection_task = None
            logger.info("Cache metrics collection stopped")

    async def _collection_loop(self) -> None:
        """Background metrics collection loop."""
        interval = self.settings.METRICS_COLLECTION_INTERVAL_SECONDS
        while True:
            try:
                await asyncio.sleep(interval)
                await self.collect_metrics()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Cache metrics collection error", error=str(e))
