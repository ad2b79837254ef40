"""
Monitoring Module

Prometheus metrics for pyramid generation runs.
"""

from .metrics import MetricsCollector

__all__ = [
    "MetricsCollector"
]
