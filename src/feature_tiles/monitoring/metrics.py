"""
Metrics Collection

Collects rendering metrics for feature tile layers: tiles rendered by
outcome, features drawn and per-level render durations. Metrics are
buffered in memory for summaries and mirrored into a private Prometheus
registry for scraping.
"""

import json
import statistics
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Callable, Dict, List, Optional, Union

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest


@dataclass
class MetricValue:
    """Represents a single metric value with metadata."""
    name: str
    value: Union[int, float]
    timestamp: datetime
    labels: Dict[str, str] = field(default_factory=dict)
    description: str = ""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MetricsCollector:
    """
    Metrics collector for feature tile rendering.

    Thread-safe: tile renders running concurrently share one collector.
    """

    def __init__(self, enable_prometheus: bool = True, buffer_size: int = 10000):
        """
        Initialize the metrics collector.

        Args:
            enable_prometheus: Mirror metrics into a Prometheus registry
            buffer_size: Number of recent metric values kept for summaries
        """
        self.enable_prometheus = enable_prometheus
        self.logger = structlog.get_logger(collector_type="MetricsCollector")

        self.metrics_buffer = deque(maxlen=buffer_size)
        self.lock = threading.RLock()

        self.builtin_metrics = {
            'system_start_time': time.time(),
            'total_metrics_collected': 0,
            'last_metric_timestamp': None
        }

        if self.enable_prometheus:
            self._init_prometheus()

    def _init_prometheus(self) -> None:
        """Register the rendering metrics in a private registry."""
        self.prometheus_registry = CollectorRegistry()
        self.prometheus_counters: Dict[str, Counter] = {}
        self.prometheus_histograms: Dict[str, Histogram] = {}
        self.prometheus_gauges: Dict[str, Gauge] = {}

        self._create_prometheus_metric(
            'counter', 'feature_tiles_rendered',
            'Tiles rendered by a feature tile layer',
            ['layer', 'status']
        )
        self._create_prometheus_metric(
            'counter', 'feature_tiles_features',
            'Features handed to the rasterizer',
            ['layer']
        )
        self._create_prometheus_metric(
            'counter', 'feature_tiles_features_dropped',
            'Features dropped by geometry type coercion',
            ['layer']
        )
        self._create_prometheus_metric(
            'histogram', 'feature_tile_render_duration_seconds',
            'Duration of a single tile render',
            ['layer', 'level']
        )
        self._create_prometheus_metric(
            'gauge', 'feature_tile_layers_initialized',
            'Feature tile layers initialized successfully',
            []
        )

    def _create_prometheus_metric(
        self,
        metric_type: str,
        name: str,
        description: str,
        labels: List[str]
    ) -> None:
        if metric_type == 'counter':
            self.prometheus_counters[name] = Counter(
                name, description, labels, registry=self.prometheus_registry
            )
        elif metric_type == 'histogram':
            self.prometheus_histograms[name] = Histogram(
                name, description, labels, registry=self.prometheus_registry
            )
        elif metric_type == 'gauge':
            self.prometheus_gauges[name] = Gauge(
                name, description, labels, registry=self.prometheus_registry
            )
        else:
            raise ValueError(f"Unsupported metric type: {metric_type}")

    def _buffer(self, name: str, value: Union[int, float], labels: Dict[str, str], description: str) -> None:
        self.metrics_buffer.append(MetricValue(
            name=name,
            value=value,
            timestamp=_utcnow(),
            labels=labels,
            description=description
        ))
        self.builtin_metrics['total_metrics_collected'] += 1
        self.builtin_metrics['last_metric_timestamp'] = time.time()

    def increment_counter(
        self,
        name: str,
        value: Union[int, float] = 1,
        labels: Optional[Dict[str, str]] = None,
        description: str = ""
    ) -> None:
        """
        Increment a counter metric.

        Args:
            name: Metric name
            value: Value to increment by
            labels: Metric labels
            description: Metric description
        """
        labels = labels or {}
        with self.lock:
            self._buffer(name, value, labels, description)
            if self.enable_prometheus and name in self.prometheus_counters:
                counter = self.prometheus_counters[name]
                (counter.labels(**labels) if labels else counter).inc(value)

    def record_histogram(
        self,
        name: str,
        value: Union[int, float],
        labels: Optional[Dict[str, str]] = None,
        description: str = ""
    ) -> None:
        """Record an observation for a histogram metric."""
        labels = labels or {}
        with self.lock:
            self._buffer(name, value, labels, description)
            if self.enable_prometheus and name in self.prometheus_histograms:
                histogram = self.prometheus_histograms[name]
                (histogram.labels(**labels) if labels else histogram).observe(value)

    def set_gauge(
        self,
        name: str,
        value: Union[int, float],
        labels: Optional[Dict[str, str]] = None,
        description: str = ""
    ) -> None:
        """Set a gauge metric."""
        labels = labels or {}
        with self.lock:
            self._buffer(name, value, labels, description)
            if self.enable_prometheus and name in self.prometheus_gauges:
                gauge = self.prometheus_gauges[name]
                (gauge.labels(**labels) if labels else gauge).set(value)

    def record_timing(
        self,
        name: str,
        duration: float,
        labels: Optional[Dict[str, str]] = None,
        description: str = ""
    ) -> None:
        self.record_histogram(name, duration, labels, description)

    def time_function(self, name: str, labels: Optional[Dict[str, str]] = None):
        """
        Decorator to time function execution.

        Args:
            name: Metric name
            labels: Metric labels

        Returns:
            Decorator function
        """
        def decorator(func: Callable) -> Callable:
            @wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.perf_counter()
                try:
                    return func(*args, **kwargs)
                finally:
                    self.record_timing(name, time.perf_counter() - start_time, labels)
            return wrapper
        return decorator

    def _percentile(self, values: List[float], percentile: float) -> float:
        """Calculate percentile value."""
        sorted_values = sorted(values)
        k = (len(sorted_values) - 1) * percentile
        f = int(k)
        c = k - f

        if f == len(sorted_values) - 1:
            return sorted_values[f]
        return sorted_values[f] * (1 - c) + sorted_values[f + 1] * c

    def get_metric_summary(self, metric_name: str, hours: int = 1) -> Dict[str, Any]:
        """Summary statistics for the buffered values of one metric."""
        cutoff = _utcnow() - timedelta(hours=hours)
        with self.lock:
            values = [
                m.value for m in self.metrics_buffer
                if m.name == metric_name and m.timestamp >= cutoff
            ]

        if not values:
            return {'error': f'No recent data for metric {metric_name}'}

        summary = {
            'metric_name': metric_name,
            'time_range_hours': hours,
            'count': len(values),
            'sum': sum(values),
            'min_value': min(values),
            'max_value': max(values),
            'avg_value': statistics.mean(values),
        }
        if len(values) > 1:
            summary['stddev'] = statistics.stdev(values)
            summary['p50'] = statistics.median(values)
            summary['p95'] = self._percentile(values, 0.95)
        return summary

    def export_metrics(self, format: str = "json") -> str:
        """
        Export metrics as JSON (buffered values) or Prometheus text format.

        Raises:
            ValueError: For unsupported formats, or Prometheus export while disabled
        """
        if format.lower() == "json":
            with self.lock:
                metrics = [
                    {
                        'name': m.name,
                        'value': m.value,
                        'timestamp': m.timestamp.isoformat(),
                        'labels': m.labels,
                        'description': m.description
                    }
                    for m in self.metrics_buffer
                ]
            return json.dumps({
                'export_timestamp': _utcnow().isoformat(),
                'metrics_count': len(metrics),
                'metrics': metrics
            }, indent=2)

        if format.lower() == "prometheus":
            if not self.enable_prometheus:
                raise ValueError("Prometheus export requested but Prometheus is disabled")
            return generate_latest(self.prometheus_registry).decode('utf-8')

        raise ValueError(f"Unsupported export format: {format}")

    def get_health(self) -> Dict[str, Any]:
        return {
            'uptime_seconds': time.time() - self.builtin_metrics['system_start_time'],
            'total_metrics_collected': self.builtin_metrics['total_metrics_collected'],
            'last_metric_timestamp': self.builtin_metrics['last_metric_timestamp'],
            'metrics_buffer_size': len(self.metrics_buffer),
            'prometheus_enabled': self.enable_prometheus,
        }
