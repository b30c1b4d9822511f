"""Callbacks from an external notification display.

A webhook display reports user interaction here. Ids that do not map to an
alert are accepted and ignored by the engine.
"""

import asyncio

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from deferred_alerts.alerts.engine import AlertEngine
from deferred_alerts.api.auth import verify_api_key
from deferred_alerts.api.dependencies import get_engine
from deferred_alerts.api.models import ErrorResponse, NotificationEventResponse

logger = structlog.get_logger(__name__)
router = APIRouter(dependencies=[Depends(verify_api_key)])

_BUSY = {503: {"model": ErrorResponse, "description": "Event queue is full"}}


def _queue_full(notification_id: str, event: str) -> HTTPException:
    logger.warning("Event queue full", notification_id=notification_id, notification_event=event)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Event queue is full, retry later",
    )


@router.post(
    "/notifications/{notification_id}/clicked",
    response_model=NotificationEventResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=_BUSY,
    summary="Report notification click",
)
async def notification_clicked(
    notification_id: str,
    engine: AlertEngine = Depends(get_engine),
) -> NotificationEventResponse:
    try:
        engine.notifications.report_clicked(notification_id)
    except asyncio.QueueFull:
        raise _queue_full(notification_id, "clicked")

    logger.info("Notification clicked", notification_id=notification_id)
    return NotificationEventResponse(
        notification_id=notification_id, event="clicked", accepted=True,
    )


@router.post(
    "/notifications/{notification_id}/closed",
    response_model=NotificationEventResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=_BUSY,
    summary="Report notification close",
)
async def notification_closed(
    notification_id: str,
    engine: AlertEngine = Depends(get_engine),
) -> NotificationEventResponse:
    try:
        engine.notifications.report_closed(notification_id)
    except asyncio.QueueFull:
        raise _queue_full(notification_id, "closed")

    logger.info("Notification closed", notification_id=notification_id)
    return NotificationEventResponse(
        notification_id=notification_id, event="closed", accepted=True,
    )
