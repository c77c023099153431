"""
Monitoring Module

Rendering metrics for feature tile layers, exported through Prometheus.
"""

from .metrics import MetricsCollector, MetricValue

__all__ = [
    "MetricsCollector",
    "MetricValue",
]
