"""Metrics — Prometheus metrics collection and exposure."""

from __future__ import annotations

from offline_pay.metrics.collector import MeshMetrics, MetricsCollector

__all__ = ["MeshMetrics", "MetricsCollector"]
