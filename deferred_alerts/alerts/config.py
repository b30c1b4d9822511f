"""Alert engine configuration.

Controls the persistence backend, identifier prefixes, preview lifetime,
notification presentation and webhook delivery. All settings can be
overridden via ``ALERTS_*`` environment variables.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AlertConfig(BaseSettings):
    """Configuration for the alert scheduling engine."""

    model_config = SettingsConfigDict(
        env_prefix="ALERTS_",
        case_sensitive=False,
        extra="ignore",
    )

    store_backend: Literal["postgres", "memory"] = Field(
        default="postgres",
        description="Where alert records are persisted",
    )

    # Identifiers shared with the timer and notification collaborators
    timer_prefix: str = Field(
        default="alert:",
        min_length=1,
        description="Prefix for timer names (followed by the alert id)",
    )
    notification_prefix: str = Field(
        default="alert:",
        min_length=1,
        description="Prefix for notification ids (followed by the alert id)",
    )
    preview_notification_id: str = Field(
        default="alert-preview",
        min_length=1,
        description="Fixed notification id used for previews",
    )
    preview_clear_seconds: float = Field(
        default=5.0,
        ge=0.0,
        le=300.0,
        description="Seconds before a preview notification is dismissed",
    )

    # Presentation
    app_name: str = Field(
        default="Deferred Alerts",
        description="Prefix of the notification context text",
    )
    icon_url: str = Field(
        default="/images/app128.png",
        description="Icon shown with every notification",
    )
    view_path: str = Field(
        default="/game/index",
        description="Path appended to the owner realm when opening a new view",
    )

    # Webhook delivery (empty URL = log-only notifications)
    webhook_url: str = Field(
        default="",
        description="Endpoint receiving show/dismiss/focus requests",
    )
    webhook_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=120.0,
        description="HTTP timeout for webhook requests",
    )

    event_queue_size: int = Field(
        default=1000,
        ge=1,
        description="Maximum events buffered by the dispatcher",
    )
