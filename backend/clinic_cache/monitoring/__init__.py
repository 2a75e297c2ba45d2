"""
Clinic Cache Monitoring Module

Cache metrics aggregation, Prometheus export and threshold alerting.
"""

from .cache_metrics import AlertRule, CacheMetricsCollector, MetricAlert

__all__ = [
    "AlertRule",
    "CacheMetricsCollector",
    "MetricAlert",
]
