"""Metrics collector — Prometheus counters, gauges, histograms.

Exposed series:
- ``offline_pay_connected_peers`` gauge
- ``offline_pay_mesh_messages_total`` counter (type, outcome)
- ``offline_pay_mesh_incidents_total`` counter (code)
- ``offline_pay_mesh_reconnects_total`` counter
- ``offline_pay_transactions_ingested_total`` counter (result)
- ``offline_pay_pending_transactions`` gauge
- ``offline_pay_sync_batches_total`` counter (outcome)
- ``offline_pay_sync_histogram``
- ``offline_pay_cron_histogram`` / ``offline_pay_cron_last_execution_gauge``
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

if TYPE_CHECKING:
    from collections.abc import Iterator

_PREFIX = "offline_pay"


class MetricsCollector:
    """Low-level Prometheus collector that owns the registry.

    Use :class:`MeshMetrics` for the high-level tracking interface.
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


class MeshMetrics:
    """High-level metrics for the mesh, the store and ledger sync."""

    def __init__(self, collector: MetricsCollector | None = None) -> None:
        self._collector = collector or MetricsCollector()

        # Mesh
        self._peers = self._collector.gauge(
            f"{_PREFIX}_connected_peers",
            "Peers with a live mesh channel",
        )
        self._messages = self._collector.counter(
            f"{_PREFIX}_mesh_messages",
            "Gossip messages by type and outcome",
            ("type", "outcome"),
        )
        self._incidents = self._collector.counter(
            f"{_PREFIX}_mesh_incidents",
            "Rejected inbound data by error code",
            ("code",),
        )
        self._reconnects = self._collector.counter(
            f"{_PREFIX}_mesh_reconnects",
            "Reconnect attempts to lost peers",
        )

        # Store
        self._ingested = self._collector.counter(
            f"{_PREFIX}_transactions_ingested",
            "Transactions received from other devices, by store result",
            ("result",),
        )
        self._pending = self._collector.gauge(
            f"{_PREFIX}_pending_transactions",
            "Transactions waiting for ledger sync",
        )

        # Sync
        self._batches = self._collector.counter(
            f"{_PREFIX}_sync_batches",
            "Ledger batches by outcome",
            ("outcome",),
        )
        self._sync = self._collector.histogram(
            f"{_PREFIX}_sync_histogram",
            "Duration of ledger sync rounds",
        )

        # Cron
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

    # -- Mesh --

    def set_connected_peers(self, count: int) -> None:
        self._peers.set(count)

    def message_received(self, msg_type: str) -> None:
        self._messages.labels(type=str(msg_type), outcome="received").inc()

    def message_reflooded(self, msg_type: str) -> None:
        self._messages.labels(type=str(msg_type), outcome="reflooded").inc()

    def message_dropped(self, reason: str) -> None:
        """Count a message dropped before processing (duplicate, malformed)."""
        self._messages.labels(type="unknown", outcome=f"dropped_{reason}").inc()

    def incident(self, code: str) -> None:
        self._incidents.labels(code=code).inc()

    def reconnect_attempted(self) -> None:
        self._reconnects.inc()

    # -- Store --

    def transaction_ingested(self, result: str) -> None:
        self._ingested.labels(result=str(result)).inc()

    def set_pending_count(self, count: int) -> None:
        """Set the number of PENDING transactions awaiting sync."""
        self._pending.set(count)

    # -- Sync --

    def batch_finished(self, outcome: str) -> None:
        self._batches.labels(outcome=outcome).inc()

    @contextmanager
    def track_sync(self) -> Iterator[None]:
        """Track the duration of one sync round."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._sync.observe(time.monotonic() - start)

    @contextmanager
    def track_cron(self, job_name: str) -> Iterator[None]:
        """Track the duration of a cron job and record last execution time."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._cron_histogram.labels(job_name=job_name).observe(time.monotonic() - start)
            self._cron_last.labels(job_name=job_name).set(time.time())
