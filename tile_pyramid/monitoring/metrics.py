"""
Metrics Collection

Prometheus metrics for pyramid generation runs. Each collector owns its own
registry so several processors can live in one interpreter (and in tests)
without clashing on metric names.

This module demonstrates:
- Job level counters and duration histograms per partitioning technique
- Tile throughput tracking
- Optional push to a Prometheus Pushgateway for batch jobs
"""

import threading
import time
from typing import Any, Dict, List, Optional, Union

import structlog
from prometheus_client import (
    CollectorRegistry, Counter, Gauge, Histogram, generate_latest, push_to_gateway
)


class MetricsCollector:
    """
    Metrics collector for the tile pyramid pipeline.

    Metrics are declared up front; recording an unknown name is logged and
    ignored so a metrics typo never fails a rendering job.
    """

    def __init__(
        self,
        prometheus_gateway: Optional[str] = None,
        registry: Optional[CollectorRegistry] = None
    ):
        """
        Initialize the metrics collector.

        Args:
            prometheus_gateway: Prometheus pushgateway address (host:port)
            registry: Registry to register metrics in; a private one by default
        """
        self.prometheus_gateway = prometheus_gateway
        self.registry = registry or CollectorRegistry()
        self.logger = structlog.get_logger(collector_type="MetricsCollector")
        self.lock = threading.RLock()

        self.counters: Dict[str, Counter] = {}
        self.histograms: Dict[str, Histogram] = {}
        self.gauges: Dict[str, Gauge] = {}

        self._create_metric(
            'counter', 'pyramid_jobs_total',
            'Pyramid generation passes by technique and outcome',
            ['technique', 'status']
        )
        self._create_metric(
            'counter', 'pyramid_tiles_written_total',
            'Tiles written to the tile sink',
            ['technique']
        )
        self._create_metric(
            'histogram', 'pyramid_job_duration_seconds',
            'Wall clock duration of one pyramid generation pass',
            ['technique']
        )
        self._create_metric(
            'gauge', 'pyramid_input_shapes',
            'Number of shapes in the last processed input',
            []
        )

    def _create_metric(
        self,
        metric_type: str,
        name: str,
        description: str,
        labels: List[str]
    ) -> None:
        if metric_type == 'counter':
            self.counters[name] = Counter(name, description, labels, registry=self.registry)
        elif metric_type == 'histogram':
            self.histograms[name] = Histogram(name, description, labels, registry=self.registry)
        elif metric_type == 'gauge':
            self.gauges[name] = Gauge(name, description, labels, registry=self.registry)
        else:
            raise ValueError(f"Unsupported metric type: {metric_type}")

    def _resolve(self, store: Dict[str, Any], name: str, labels: Optional[Dict[str, str]]):
        metric = store.get(name)
        if metric is None:
            self.logger.warning("Unknown metric", metric_name=name)
            return None
        return metric.labels(**labels) if labels else metric

    def increment_counter(
        self,
        name: str,
        value: Union[int, float] = 1,
        labels: Dict[str, str] = None
    ) -> None:
        """
        Increment a counter metric.

        Args:
            name: Metric name
            value: Value to increment by
            labels: Metric labels
        """
        with self.lock:
            metric = self._resolve(self.counters, name, labels)
            if metric is not None:
                metric.inc(value)

    def record_histogram(
        self,
        name: str,
        value: Union[int, float],
        labels: Dict[str, str] = None
    ) -> None:
        with self.lock:
            metric = self._resolve(self.histograms, name, labels)
            if metric is not None:
                metric.observe(value)

    def set_gauge(
        self,
        name: str,
        value: Union[int, float],
        labels: Dict[str, str] = None
    ) -> None:
        with self.lock:
            metric = self._resolve(self.gauges, name, labels)
            if metric is not None:
                metric.set(value)

    def get_sample_value(self, name: str, labels: Dict[str, str] = None) -> Optional[float]:
        """Current value of a sample, e.g. ``pyramid_jobs_total`` with labels."""
        return self.registry.get_sample_value(name, labels or {})

    def push_to_prometheus_gateway(self, job_name: str = "tile_pyramid") -> bool:
        """Push metrics to the Prometheus pushgateway, if one is configured."""
        if not self.prometheus_gateway:
            return False

        start_time = time.time()
        try:
            push_to_gateway(self.prometheus_gateway, job=job_name, registry=self.registry)
        except OSError as e:
            self.logger.error(
                "Failed to push metrics to Prometheus gateway",
                gateway=self.prometheus_gateway,
                error=str(e)
            )
            return False

        self.logger.info(
            "Pushed metrics to Prometheus gateway",
            gateway=self.prometheus_gateway,
            job=job_name,
            push_time=time.time() - start_time
        )
        return True

    def export_metrics(self) -> str:
        """Metrics in the Prometheus text exposition format."""
        return generate_latest(self.registry).decode('utf-8')
