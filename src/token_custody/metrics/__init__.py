"""Metrics: Prometheus metrics collection and exposure."""

from token_custody.metrics.collector import EngineMetrics, MetricsCollector

__all__ = ["EngineMetrics", "MetricsCollector"]
