"""Metrics collector: Prometheus counters, gauges, histograms.

Exposes:
- ``custody_batches_by_status`` gauge-vec (PENDING, PROCESSING, DONE, ERROR)
- ``custody_batches_finished_total`` counter-vec by final status
- ``custody_batches_in_flight`` gauge
- ``custody_transfer_attempts_total`` counter-vec by outcome
- ``custody_dispatch_batch_histogram``
- ``custody_finalize_total`` counter-vec by outcome
- ``custody_finalize_histogram``
- ``custody_cron_histogram`` / ``custody_cron_last_execution_gauge``
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

if TYPE_CHECKING:
    from collections.abc import Iterator


_PREFIX = "custody"

_BATCH_STATUSES = ("PENDING", "PROCESSING", "DONE", "ERROR")


class MetricsCollector:
    """Low-level Prometheus collector that owns the registry.

    Use :class:`EngineMetrics` for the high-level tracking interface.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._registry

    def gauge(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Gauge:
        """Register and return a Gauge."""
        return Gauge(name, doc, labels, registry=self._registry)

    def histogram(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Histogram:
        """Register and return a Histogram."""
        return Histogram(name, doc, labels, registry=self._registry)

    def counter(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Counter:
        """Register and return a Counter."""
        return Counter(name, doc, labels, registry=self._registry)


class EngineMetrics:
    """High-level custody engine metrics.

    All histograms track operation duration in seconds.
    """

    def __init__(self, collector: MetricsCollector | None = None) -> None:
        self._collector = collector or MetricsCollector()

        self._batches_by_status = self._collector.gauge(
            f"{_PREFIX}_batches_by_status",
            "Number of batches in each status",
            ("status",),
        )
        self._batches_finished = self._collector.counter(
            f"{_PREFIX}_batches_finished",
            "Batches whose dispatch ended, by final status",
            ("status",),
        )
        self._batches_in_flight = self._collector.gauge(
            f"{_PREFIX}_batches_in_flight",
            "Batches currently being dispatched",
        )
        self._transfer_attempts = self._collector.counter(
            f"{_PREFIX}_transfer_attempts",
            "Batch transfer attempts by outcome",
            ("outcome",),
        )
        self._dispatch_batch = self._collector.histogram(
            f"{_PREFIX}_dispatch_batch_histogram",
            "Duration of a full batch dispatch",
        )
        self._finalize = self._collector.counter(
            f"{_PREFIX}_finalize",
            "Contract finalize calls by outcome",
            ("outcome",),
        )
        self._finalize_duration = self._collector.histogram(
            f"{_PREFIX}_finalize_histogram",
            "Duration of contract finalize operations",
        )

        # Cron metrics
        self._cron_histogram = self._collector.histogram(
            f"{_PREFIX}_cron_histogram",
            "Duration of cron job executions",
            ("job_name",),
        )
        self._cron_last = self._collector.gauge(
            f"{_PREFIX}_cron_last_execution_gauge",
            "Timestamp of last cron execution",
            ("job_name",),
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._collector.registry

    # -- Stat setters --

    def set_batch_counts(self, counts: dict[str, int]) -> None:
        """Set the batch-per-status gauges; statuses absent from *counts* read 0."""
        for status in _BATCH_STATUSES:
            self._batches_by_status.labels(status=status).set(counts.get(status, 0))

    def record_batch_finished(self, status: str) -> None:
        """Count a batch that reached DONE or ERROR."""
        self._batches_finished.labels(status=status).inc()

    def record_transfer_attempt(self, *, success: bool) -> None:
        """Count one batch transfer attempt."""
        self._transfer_attempts.labels(outcome="success" if success else "failure").inc()

    def record_finalize(self, outcome: str) -> None:
        """Count one finalize call (``success``, ``conflict``, ``error``...)."""
        self._finalize.labels(outcome=outcome).inc()

    # -- Operation trackers (context managers) --

    @contextmanager
    def track_dispatch(self) -> Iterator[None]:
        """Track a batch dispatch as in flight and record its duration."""
        start = time.monotonic()
        self._batches_in_flight.inc()
        try:
            yield
        finally:
            self._batches_in_flight.dec()
            self._dispatch_batch.observe(time.monotonic() - start)

    @contextmanager
    def track_finalize(self) -> Iterator[None]:
        """Track the duration of a contract finalize."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._finalize_duration.observe(time.monotonic() - start)

    @contextmanager
    def track_cron(self, job_name: str) -> Iterator[None]:
        """Track the duration of a cron job and record last execution time."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._cron_histogram.labels(job_name=job_name).observe(time.monotonic() - start)
            self._cron_last.labels(job_name=job_name).set(time.time())
