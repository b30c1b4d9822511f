"""
Health check endpoint covering the alert store and event dispatcher.
"""

import time

import structlog
from fastapi import APIRouter, Depends

from deferred_alerts.alerts.engine import AlertEngine
from deferred_alerts.api.dependencies import get_engine
from deferred_alerts.api.models import HealthResponse

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health",
    description="Store reachability and dispatcher state. Does not require an API key.",
)
async def health_check(engine: AlertEngine = Depends(get_engine)) -> HealthResponse:
    start = time.perf_counter()
    try:
        store_available = await engine.store.health_check()
    except Exception as e:
        logger.warning("Store health check failed", error=str(e))
        store_available = False
    latency_ms = round((time.perf_counter() - start) * 1000, 2)

    dispatcher = engine.dispatcher
    if store_available and dispatcher.running:
        overall = "healthy"
    elif store_available or dispatcher.running:
        overall = "degraded"
    else:
        overall = "unhealthy"

    return HealthResponse(
        status=overall,
        store_available=store_available,
        dispatcher_running=dispatcher.running,
        pending_events=dispatcher.pending,
        store_latency_ms=latency_ms,
    )
