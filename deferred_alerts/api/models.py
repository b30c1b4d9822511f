"""
Pydantic models for API request/response schemas.
"""

from typing import Any

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Response model for errors."""

    detail: str = Field(
        ...,
        description="Error message",
    )
    error_type: str = Field(
        default="error",
        description="Error type",
    )


class InvalidPayloadResponse(ErrorResponse):
    """Response model for payload validation failures."""

    field: str = Field(..., description="First payload field that failed validation")


# Health models


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(
        ...,
        description="Overall service status: healthy, degraded, or unhealthy",
    )
    store_available: bool = Field(
        default=False,
        description="Whether the alert store is reachable",
    )
    dispatcher_running: bool = Field(
        default=False,
        description="Whether timer and notification events are being consumed",
    )
    pending_events: int = Field(
        default=0,
        description="Events waiting in the dispatcher queue",
    )
    store_latency_ms: float | None = Field(
        default=None,
        description="Store health check latency in milliseconds",
    )


# Alert models


class AlertItem(BaseModel):
    """Single alert record as seen by callers."""

    id: int = Field(..., description="Store-assigned alert identifier")
    payload: dict[str, Any] = Field(..., description="Validated alert payload")
    triggered: bool = Field(default=False, description="Whether the timer has fired")
    handled: bool = Field(
        default=False,
        description="Whether the notification was clicked, dismissed or acknowledged",
    )
    has_notification: bool = Field(
        default=False,
        description="Whether a notification is currently displayed",
    )


class AlertsResponse(BaseModel):
    """Response model for listing alerts."""

    alerts: list[AlertItem] = Field(..., description="List of alerts")
    total: int = Field(..., description="Number of alerts returned")
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


class AlertPayloadRequest(BaseModel):
    """Request body carrying a raw alert payload.

    The payload is validated by the engine, not here, so that failures name
    the offending payload field.
    """

    payload: dict[str, Any] = Field(..., description="Raw alert payload")


class OwnedAlertPayloadRequest(AlertPayloadRequest):
    """Raw alert payload plus the owner it is created for."""

    realm: str = Field(..., min_length=1, description="Owner realm, e.g. https://en1.example.com")
    owner_id: int = Field(..., ge=0, description="Owner identifier within the realm")


class AlertIdResponse(BaseModel):
    """Response model for commands that return an alert id."""

    id: int = Field(..., description="Alert identifier")
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


class AlertDeleteResponse(BaseModel):
    """Response model for deleting an alert."""

    id: int = Field(..., description="Deleted alert identifier")
    mode: str = Field(
        ...,
        description="hard (removed) or soft (removed once its notification closes)",
    )
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


class AlertAcknowledgeResponse(BaseModel):
    """Response model for acknowledging an alert."""

    id: int = Field(..., description="Acknowledged alert identifier")
    handled: bool = Field(..., description="New handled status")
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


class PreviewResponse(BaseModel):
    """Response model for previewing a payload."""

    shown: bool = Field(..., description="Whether the preview notification was shown")
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


# Notification callback models


class NotificationEventResponse(BaseModel):
    """Response model for notification click/close callbacks."""

    notification_id: str = Field(..., description="Notification the event refers to")
    event: str = Field(..., description="clicked or closed")
    accepted: bool = Field(..., description="Whether the event was queued")
