"""Observability layer - logging and metrics."""

from deferred_alerts.observability.logging import setup_logging
from deferred_alerts.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "MetricsCollector", "get_metrics"]
