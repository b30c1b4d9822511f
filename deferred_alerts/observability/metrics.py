"""
Prometheus metrics for monitoring the alert scheduling engine.

Defines and exposes metrics for:
- Alert creation and deletion (hard vs. soft)
- Timer arming, cancellation and firing
- Notification display and user interaction
- Event dispatcher health (handler failures, queue depth)

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    start_http_server,
)

from deferred_alerts.config.settings import get_settings

logger = logging.getLogger(__name__)


class MetricsCollector:
    """
    Prometheus metrics collector for the alert engine.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_alert_created()
        metrics.record_deletion("soft")
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.alerts_created = Counter(
            "deferred_alerts_created_total",
            "Total number of alerts created",
        )

        self.alerts_deleted = Counter(
            "deferred_alerts_deleted_total",
            "Total number of alert deletions",
            ["mode"],  # hard, soft
        )

        self.timers_armed = Counter(
            "deferred_alerts_timers_armed_total",
            "Total number of timers armed",
        )

        self.timers_cancelled = Counter(
            "deferred_alerts_timers_cancelled_total",
            "Total number of timers cancelled",
        )

        self.timers_fired = Counter(
            "deferred_alerts_timers_fired_total",
            "Total number of timer fire events received",
            ["outcome"],  # triggered, skipped
        )

        self.notifications_shown = Counter(
            "deferred_alerts_notifications_shown_total",
            "Total number of notifications displayed",
            ["kind"],  # alert, preview
        )

        self.notification_events = Counter(
            "deferred_alerts_notification_events_total",
            "Total number of notification interaction events",
            ["event"],  # clicked, closed
        )

        self.handler_failures = Counter(
            "deferred_alerts_handler_failures_total",
            "Total number of event handler failures",
            ["event"],
        )

        self.event_queue_depth = Gauge(
            "deferred_alerts_event_queue_depth",
            "Number of events waiting in the dispatcher queue",
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_alert_created(self) -> None:
        """Record a newly persisted alert."""
        self.alerts_created.inc()

    def record_deletion(self, mode: str) -> None:
        """
        Record an alert deletion.

        Args:
            mode: ``hard`` for immediate removal, ``soft`` for pending delete
        """
        self.alerts_deleted.labels(mode=mode).inc()

    def record_timer_armed(self) -> None:
        self.timers_armed.inc()

    def record_timer_cancelled(self) -> None:
        self.timers_cancelled.inc()

    def record_timer_fired(self, outcome: str) -> None:
        """
        Record a timer fire event.

        Args:
            outcome: triggered, or skipped (deleted or re-armed since)
        """
        self.timers_fired.labels(outcome=outcome).inc()

    def record_notification_shown(self, kind: str = "alert") -> None:
        self.notifications_shown.labels(kind=kind).inc()

    def record_notification_event(self, event: str) -> None:
        self.notification_events.labels(event=event).inc()

    def record_handler_failure(self, event: str) -> None:
        self.handler_failures.labels(event=event).inc()

    def set_event_queue_depth(self, depth: int) -> None:
        """
        Set dispatcher queue depth metric.

        Args:
            depth: Number of events waiting
        """
        self.event_queue_depth.set(depth)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
