"""Builds an AlertEngine from configuration.

The store backend follows ``AlertConfig.store_backend``. Notifications and
view focus go to ``AlertConfig.webhook_url`` when set, otherwise to the log.
"""

import logging

from deferred_alerts.alerts.config import AlertConfig
from deferred_alerts.alerts.engine import AlertEngine
from deferred_alerts.alerts.notifications import (
    LoggingNotificationService,
    LoggingViewLauncher,
    NotificationService,
    ViewLauncher,
    WebhookNotificationService,
    WebhookViewLauncher,
)
from deferred_alerts.alerts.repository import PostgresAlertStore
from deferred_alerts.alerts.store import AlertStore, InMemoryAlertStore
from deferred_alerts.alerts.timers import AsyncioTimerService
from deferred_alerts.storage.database import Database

logger = logging.getLogger(__name__)


async def build_store(
    config: AlertConfig,
    database: Database | None = None,
) -> AlertStore:
    """Create the configured store, ensuring its table exists.

    Args:
        config: Engine configuration.
        database: Connected database; required for the postgres backend.
    """
    if config.store_backend == "memory":
        logger.warning("Using in-memory alert store; alerts will not survive a restart")
        return InMemoryAlertStore()

    if database is None:
        raise ValueError("The postgres alert store requires a database")

    store = PostgresAlertStore(database)
    await store.create_table()
    return store


def build_collaborators(
    config: AlertConfig,
) -> tuple[NotificationService, ViewLauncher]:
    if not config.webhook_url:
        return LoggingNotificationService(), LoggingViewLauncher()

    return (
        WebhookNotificationService(
            config.webhook_url, timeout=config.webhook_timeout_seconds,
        ),
        WebhookViewLauncher(
            config.webhook_url, timeout=config.webhook_timeout_seconds,
        ),
    )


async def build_engine(
    config: AlertConfig | None = None,
    database: Database | None = None,
) -> AlertEngine:
    """Assemble an engine. Call ``start()`` on it before use."""
    config = config or AlertConfig()
    store = await build_store(config, database)
    notifications, view_launcher = build_collaborators(config)

    return AlertEngine(
        store=store,
        timers=AsyncioTimerService(),
        notifications=notifications,
        view_launcher=view_launcher,
        config=config,
    )
