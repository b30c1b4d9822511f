"""Alert endpoints for scheduling, editing, deleting and previewing alerts.

Two routers share one set of handlers:

- ``router``: unrestricted, for trusted callers. The owner is named in the
  body (create, preview) or the query string (list).
- ``owner_router``: mounted under ``/owner``; the owner comes from the
  X-Owner-Realm/X-Owner-Id headers and other owners' alerts behave as
  missing.

``InvalidPayload`` and ``AlertNotFound`` propagate to the app's exception
handlers (422 and 404).
"""

import time

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from deferred_alerts.alerts.engine import AlertEngine
from deferred_alerts.alerts.errors import AlertNotFound
from deferred_alerts.alerts.schemas import AlertRecord, Owner
from deferred_alerts.api.auth import verify_api_key
from deferred_alerts.api.dependencies import get_engine, get_owner
from deferred_alerts.api.models import (
    AlertAcknowledgeResponse,
    AlertDeleteResponse,
    AlertIdResponse,
    AlertItem,
    AlertPayloadRequest,
    AlertsResponse,
    ErrorResponse,
    InvalidPayloadResponse,
    OwnedAlertPayloadRequest,
    PreviewResponse,
)

logger = structlog.get_logger(__name__)
router = APIRouter(dependencies=[Depends(verify_api_key)])
owner_router = APIRouter(prefix="/owner", dependencies=[Depends(verify_api_key)])

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Alert not found"}}
_INVALID = {422: {"model": InvalidPayloadResponse, "description": "Invalid payload"}}


def _to_item(record: AlertRecord) -> AlertItem:
    return AlertItem(**record.to_dict())


def _elapsed_ms(start_time: float) -> float:
    return round((time.perf_counter() - start_time) * 1000, 2)


async def _list(engine: AlertEngine, owner: Owner | None) -> AlertsResponse:
    start_time = time.perf_counter()
    records = await engine.get_all(owner)
    items = [_to_item(r) for r in records]
    latency_ms = _elapsed_ms(start_time)

    logger.info("Alerts listed", total=len(items), latency_ms=latency_ms)
    return AlertsResponse(alerts=items, total=len(items), latency_ms=latency_ms)


async def _get(engine: AlertEngine, alert_id: int, owner: Owner | None) -> AlertItem:
    record = await engine.get(alert_id, owner)
    if record is None:
        raise AlertNotFound(alert_id)
    return _to_item(record)


async def _create(engine: AlertEngine, payload: dict, owner: Owner) -> AlertIdResponse:
    start_time = time.perf_counter()
    alert_id = await engine.create(payload, owner)
    latency_ms = _elapsed_ms(start_time)

    logger.info("Alert created", alert_id=alert_id, realm=owner.realm, latency_ms=latency_ms)
    return AlertIdResponse(id=alert_id, latency_ms=latency_ms)


async def _set_data(
    engine: AlertEngine, alert_id: int, payload: dict, owner: Owner | None,
) -> AlertIdResponse:
    start_time = time.perf_counter()
    await engine.set_data(alert_id, payload, owner)
    latency_ms = _elapsed_ms(start_time)

    logger.info("Alert updated", alert_id=alert_id, latency_ms=latency_ms)
    return AlertIdResponse(id=alert_id, latency_ms=latency_ms)


async def _delete(
    engine: AlertEngine, alert_id: int, owner: Owner | None,
) -> AlertDeleteResponse:
    start_time = time.perf_counter()
    outcome = await engine.delete(alert_id, owner)
    latency_ms = _elapsed_ms(start_time)

    logger.info("Alert deleted", alert_id=alert_id, mode=outcome.value, latency_ms=latency_ms)
    return AlertDeleteResponse(id=alert_id, mode=outcome.value, latency_ms=latency_ms)


async def _acknowledge(
    engine: AlertEngine, alert_id: int, owner: Owner | None,
) -> AlertAcknowledgeResponse:
    start_time = time.perf_counter()
    await engine.acknowledge(alert_id, owner)
    latency_ms = _elapsed_ms(start_time)

    logger.info("Alert acknowledged", alert_id=alert_id, latency_ms=latency_ms)
    return AlertAcknowledgeResponse(id=alert_id, handled=True, latency_ms=latency_ms)


async def _preview(engine: AlertEngine, payload: dict, owner: Owner) -> PreviewResponse:
    start_time = time.perf_counter()
    shown = await engine.preview(payload, owner)
    return PreviewResponse(shown=shown, latency_ms=_elapsed_ms(start_time))


async def _preview_existing(engine: AlertEngine, alert_id: int) -> PreviewResponse:
    start_time = time.perf_counter()
    if not await engine.preview_existing(alert_id):
        raise AlertNotFound(alert_id)
    return PreviewResponse(shown=True, latency_ms=_elapsed_ms(start_time))


# ── Unrestricted ─────────────────────────────────────────


@router.get(
    "/alerts",
    response_model=AlertsResponse,
    summary="List alerts",
    description="List visible alerts in creation order, optionally for one owner.",
)
async def list_alerts(
    realm: str | None = Query(default=None, description="Filter by owner realm"),
    owner_id: int | None = Query(default=None, ge=0, description="Filter by owner id"),
    engine: AlertEngine = Depends(get_engine),
) -> AlertsResponse:
    if (realm is None) != (owner_id is None):
        raise HTTPException(
            status_code=422,
            detail="realm and owner_id must be given together",
        )
    owner = Owner(realm=realm, owner_id=owner_id) if realm is not None else None
    return await _list(engine, owner)


@router.post(
    "/alerts",
    response_model=AlertIdResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_INVALID,
    summary="Create alert",
)
async def create_alert(
    request: OwnedAlertPayloadRequest,
    engine: AlertEngine = Depends(get_engine),
) -> AlertIdResponse:
    owner = Owner(realm=request.realm, owner_id=request.owner_id)
    return await _create(engine, request.payload, owner)


@router.post(
    "/alerts/preview",
    response_model=PreviewResponse,
    responses=_INVALID,
    summary="Preview alert",
    description="Show a payload immediately; the preview clears itself after a few seconds.",
)
async def preview_alert(
    request: OwnedAlertPayloadRequest,
    engine: AlertEngine = Depends(get_engine),
) -> PreviewResponse:
    owner = Owner(realm=request.realm, owner_id=request.owner_id)
    return await _preview(engine, request.payload, owner)


@router.get(
    "/alerts/{alert_id}",
    response_model=AlertItem,
    responses=_NOT_FOUND,
    summary="Get alert",
)
async def get_alert(
    alert_id: int,
    engine: AlertEngine = Depends(get_engine),
) -> AlertItem:
    return await _get(engine, alert_id, None)


@router.put(
    "/alerts/{alert_id}",
    response_model=AlertIdResponse,
    responses={**_NOT_FOUND, **_INVALID},
    summary="Replace alert payload",
    description="Replace the payload and re-arm the alert; clears triggered and handled.",
)
async def set_alert_data(
    alert_id: int,
    request: AlertPayloadRequest,
    engine: AlertEngine = Depends(get_engine),
) -> AlertIdResponse:
    return await _set_data(engine, alert_id, request.payload, None)


@router.delete(
    "/alerts/{alert_id}",
    response_model=AlertDeleteResponse,
    responses=_NOT_FOUND,
    summary="Delete alert",
)
async def delete_alert(
    alert_id: int,
    engine: AlertEngine = Depends(get_engine),
) -> AlertDeleteResponse:
    return await _delete(engine, alert_id, None)


@router.post(
    "/alerts/{alert_id}/acknowledge",
    response_model=AlertAcknowledgeResponse,
    responses=_NOT_FOUND,
    summary="Acknowledge alert",
)
async def acknowledge_alert(
    alert_id: int,
    engine: AlertEngine = Depends(get_engine),
) -> AlertAcknowledgeResponse:
    return await _acknowledge(engine, alert_id, None)


@router.post(
    "/alerts/{alert_id}/preview",
    response_model=PreviewResponse,
    responses=_NOT_FOUND,
    summary="Preview stored alert",
    description="Show a stored alert's content as a preview without changing its state.",
)
async def preview_stored_alert(
    alert_id: int,
    engine: AlertEngine = Depends(get_engine),
) -> PreviewResponse:
    return await _preview_existing(engine, alert_id)


# ── Owner-scoped ─────────────────────────────────────────


@owner_router.get("/alerts", response_model=AlertsResponse, summary="List own alerts")
async def list_owner_alerts(
    owner: Owner = Depends(get_owner),
    engine: AlertEngine = Depends(get_engine),
) -> AlertsResponse:
    return await _list(engine, owner)


@owner_router.post(
    "/alerts",
    response_model=AlertIdResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_INVALID,
    summary="Create own alert",
)
async def create_owner_alert(
    request: AlertPayloadRequest,
    owner: Owner = Depends(get_owner),
    engine: AlertEngine = Depends(get_engine),
) -> AlertIdResponse:
    return await _create(engine, request.payload, owner)


@owner_router.post(
    "/alerts/preview",
    response_model=PreviewResponse,
    responses=_INVALID,
    summary="Preview own alert",
)
async def preview_owner_alert(
    request: AlertPayloadRequest,
    owner: Owner = Depends(get_owner),
    engine: AlertEngine = Depends(get_engine),
) -> PreviewResponse:
    return await _preview(engine, request.payload, owner)


@owner_router.get(
    "/alerts/{alert_id}",
    response_model=AlertItem,
    responses=_NOT_FOUND,
    summary="Get own alert",
)
async def get_owner_alert(
    alert_id: int,
    owner: Owner = Depends(get_owner),
    engine: AlertEngine = Depends(get_engine),
) -> AlertItem:
    return await _get(engine, alert_id, owner)


@owner_router.put(
    "/alerts/{alert_id}",
    response_model=AlertIdResponse,
    responses={**_NOT_FOUND, **_INVALID},
    summary="Replace own alert payload",
)
async def set_owner_alert_data(
    alert_id: int,
    request: AlertPayloadRequest,
    owner: Owner = Depends(get_owner),
    engine: AlertEngine = Depends(get_engine),
) -> AlertIdResponse:
    return await _set_data(engine, alert_id, request.payload, owner)


@owner_router.delete(
    "/alerts/{alert_id}",
    response_model=AlertDeleteResponse,
    responses=_NOT_FOUND,
    summary="Delete own alert",
)
async def delete_owner_alert(
    alert_id: int,
    owner: Owner = Depends(get_owner),
    engine: AlertEngine = Depends(get_engine),
) -> AlertDeleteResponse:
    return await _delete(engine, alert_id, owner)


@owner_router.post(
    "/alerts/{alert_id}/acknowledge",
    response_model=AlertAcknowledgeResponse,
    responses=_NOT_FOUND,
    summary="Acknowledge own alert",
)
async def acknowledge_owner_alert(
    alert_id: int,
    owner: Owner = Depends(get_owner),
    engine: AlertEngine = Depends(get_engine),
) -> AlertAcknowledgeResponse:
    return await _acknowledge(engine, alert_id, owner)
