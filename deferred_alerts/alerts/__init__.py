"""Deferred alert scheduling engine.

Components:
- AlertPayload / AlertRecord / Owner: Validated content and stored records
- AlertConfig: Pydantic settings for prefixes, preview and delivery
- AlertStore / InMemoryAlertStore / PostgresAlertStore: Atomic persistence
- TimerService / AsyncioTimerService: Named one-shot wake-ups
- NotificationService / ViewLauncher: Display collaborators (webhook or log)
- AlertTimerName / AlertNotificationName: Id <-> name codecs
- EventDispatcher: Serialized ingress for timer and notification events
- AlertEngine: Orchestrator for the alert lifecycle
- InvalidPayload / AlertNotFound: Errors surfaced to callers
"""

from deferred_alerts.alerts.config import AlertConfig
from deferred_alerts.alerts.dispatcher import EventDispatcher
from deferred_alerts.alerts.engine import AlertEngine
from deferred_alerts.alerts.errors import AlertError, AlertNotFound, InvalidPayload
from deferred_alerts.alerts.events import (
    AlertEvent,
    NotificationClicked,
    NotificationClosed,
    TimerFired,
)
from deferred_alerts.alerts.factory import build_engine
from deferred_alerts.alerts.names import (
    MAX_ALERT_ID,
    AlertNotificationName,
    AlertTimerName,
)
from deferred_alerts.alerts.notifications import (
    LoggingNotificationService,
    LoggingViewLauncher,
    NotificationContent,
    NotificationService,
    ViewLauncher,
    WebhookNotificationService,
    WebhookViewLauncher,
)
from deferred_alerts.alerts.repository import PostgresAlertStore
from deferred_alerts.alerts.schemas import (
    PAYLOAD_FIELDS,
    AlertPayload,
    AlertRecord,
    Owner,
    validate_payload,
)
from deferred_alerts.alerts.store import (
    AlertStore,
    CloseOutcome,
    InMemoryAlertStore,
    RemovalOutcome,
)
from deferred_alerts.alerts.timers import AsyncioTimerService, TimerService

__all__ = [
    "AlertConfig",
    "AlertEngine",
    "AlertError",
    "AlertEvent",
    "AlertNotFound",
    "AlertNotificationName",
    "AlertPayload",
    "AlertRecord",
    "AlertStore",
    "AlertTimerName",
    "AsyncioTimerService",
    "CloseOutcome",
    "EventDispatcher",
    "InMemoryAlertStore",
    "InvalidPayload",
    "LoggingNotificationService",
    "LoggingViewLauncher",
    "MAX_ALERT_ID",
    "NotificationClicked",
    "NotificationClosed",
    "NotificationContent",
    "NotificationService",
    "Owner",
    "PAYLOAD_FIELDS",
    "PostgresAlertStore",
    "RemovalOutcome",
    "TimerFired",
    "TimerService",
    "ViewLauncher",
    "WebhookNotificationService",
    "WebhookViewLauncher",
    "build_engine",
    "validate_payload",
]
