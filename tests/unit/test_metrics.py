"""
Unit Tests for Metrics Collection
"""

import json
import unittest
from pathlib import Path

import pytest

import sys
sys.path.append(str(Path(__file__).parent.parent.parent / "src"))

from feature_tiles.monitoring import MetricsCollector


class TestMetricsCollector(unittest.TestCase):
    """Buffered metrics and Prometheus export."""

    def setUp(self):
        self.metrics = MetricsCollector()

    def test_counter_summary(self):
        self.metrics.increment_counter("feature_tiles_features", 3, labels={"layer": "roads"})
        self.metrics.increment_counter("feature_tiles_features", 5, labels={"layer": "roads"})

        summary = self.metrics.get_metric_summary("feature_tiles_features")

        self.assertEqual(summary["count"], 2)
        self.assertEqual(summary["sum"], 8)
        self.assertEqual(summary["max_value"], 5)

    def test_summary_without_data(self):
        self.assertIn("error", self.metrics.get_metric_summary("nothing"))

    def test_timing_decorator(self):
        @self.metrics.time_function("feature_tile_render_duration_seconds", {"layer": "roads", "level": "3"})
        def render():
            return "done"

        self.assertEqual(render(), "done")
        exported = self.metrics.export_metrics("prometheus")
        self.assertIn('feature_tile_render_duration_seconds_count{layer="roads",level="3"} 1.0', exported)

    def test_percentiles(self):
        for value in range(1, 11):
            self.metrics.record_histogram("custom", value)
        summary = self.metrics.get_metric_summary("custom")
        self.assertEqual(summary["p50"], 5.5)
        self.assertAlmostEqual(summary["p95"], 9.55)

    def test_json_export(self):
        self.metrics.set_gauge("feature_tile_layers_initialized", 1)
        payload = json.loads(self.metrics.export_metrics("json"))
        self.assertEqual(payload["metrics_count"], 1)
        self.assertEqual(payload["metrics"][0]["name"], "feature_tile_layers_initialized")

    def test_unsupported_export(self):
        with self.assertRaises(ValueError):
            self.metrics.export_metrics("xml")
        with self.assertRaises(ValueError):
            MetricsCollector(enable_prometheus=False).export_metrics("prometheus")

    def test_collectors_do_not_share_registries(self):
        other = MetricsCollector()
        self.metrics.increment_counter("feature_tiles_rendered", labels={"layer": "a", "status": "rendered"})
        self.assertNotIn('layer="a"', other.export_metrics("prometheus"))

    def test_health(self):
        self.metrics.increment_counter("feature_tiles_rendered", labels={"layer": "a", "status": "rendered"})
        health = self.metrics.get_health()
        self.assertEqual(health["total_metrics_collected"], 1)
        self.assertTrue(health["prometheus_enabled"])


if __name__ == "__main__":
    pytest.main([__file__])
