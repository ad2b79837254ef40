"""
Unit Tests for Metrics Collection
"""

import unittest
from unittest.mock import patch

from tile_pyramid.monitoring.metrics import MetricsCollector


class TestMetricsCollector(unittest.TestCase):

    def setUp(self):
        self.metrics = MetricsCollector()

    def test_counters(self):
        labels = {"technique": "flat", "status": "success"}
        self.metrics.increment_counter("pyramid_jobs_total", labels=labels)
        self.metrics.increment_counter("pyramid_jobs_total", labels=labels)
        self.assertEqual(self.metrics.get_sample_value("pyramid_jobs_total", labels), 2.0)

        self.metrics.increment_counter(
            "pyramid_tiles_written_total", 21, {"technique": "pyramid"}
        )
        self.assertEqual(
            self.metrics.get_sample_value("pyramid_tiles_written_total", {"technique": "pyramid"}),
            21.0
        )

    def test_histogram_and_gauge(self):
        self.metrics.record_histogram("pyramid_job_duration_seconds", 1.5, {"technique": "flat"})
        self.metrics.set_gauge("pyramid_input_shapes", 42)
        self.assertEqual(
            self.metrics.get_sample_value("pyramid_job_duration_seconds_count", {"technique": "flat"}),
            1.0
        )
        self.assertEqual(self.metrics.get_sample_value("pyramid_input_shapes"), 42.0)

    def test_unknown_metric_is_ignored(self):
        self.metrics.increment_counter("no_such_metric")
        self.metrics.record_histogram("no_such_histogram", 1.0)
        self.assertIsNone(self.metrics.get_sample_value("no_such_metric_total"))

    def test_collectors_do_not_share_registries(self):
        other = MetricsCollector()
        self.metrics.set_gauge("pyramid_input_shapes", 5)
        self.assertEqual(other.get_sample_value("pyramid_input_shapes"), 0.0)

    def test_export(self):
        self.metrics.increment_counter("pyramid_tiles_written_total", 3, {"technique": "flat"})
        exported = self.metrics.export_metrics()
        self.assertIn('pyramid_tiles_written_total{technique="flat"} 3.0', exported)

    def test_push_without_gateway(self):
        self.assertFalse(self.metrics.push_to_prometheus_gateway())

    @patch("tile_pyramid.monitoring.metrics.push_to_gateway")
    def test_push_to_gateway(self, mock_push):
        metrics = MetricsCollector(prometheus_gateway="pushgateway:9091")
        self.assertTrue(metrics.push_to_prometheus_gateway("nightly"))
        mock_push.assert_called_once_with(
            "pushgateway:9091", job="nightly", registry=metrics.registry
        )

    @patch("tile_pyramid.monitoring.metrics.push_to_gateway", side_effect=OSError("refused"))
    def test_push_failure_is_reported(self, _):
        metrics = MetricsCollector(prometheus_gateway="pushgateway:9091")
        self.assertFalse(metrics.push_to_prometheus_gateway())


if __name__ == "__main__":
    unittest.main()
