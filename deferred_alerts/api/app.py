"""
FastAPI application factory.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from deferred_alerts.alerts.errors import AlertNotFound, InvalidPayload
from deferred_alerts.api.dependencies import cleanup_dependencies, init_dependencies
from deferred_alerts.api.routes import alerts, health, notifications
from deferred_alerts.config.settings import get_settings

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Deferred alerts API starting up")

    engine = await init_dependencies()
    logger.info("Alert engine started", dispatcher_running=engine.dispatcher.running)

    yield

    logger.info("Deferred alerts API shutting down")
    await cleanup_dependencies()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    openapi_tags = [
        {"name": "health", "description": "Service health checks"},
        {"name": "alerts", "description": "Unrestricted alert management"},
        {"name": "owner-alerts", "description": "Alert management scoped to the calling owner"},
        {"name": "notifications", "description": "Notification display callbacks"},
    ]

    app = FastAPI(
        title="Deferred Alerts API",
        description="""
API for scheduling deferred notifications.

## Alerts

Each alert belongs to an owner (realm + owner id), carries a payload with
its due time, and shows a notification when due. Clicking or dismissing the
notification marks the alert handled.

## Authentication

Requires `X-API-KEY` header for all requests except `/health`. Owner-scoped
routes additionally read `X-Owner-Realm` and `X-Owner-Id`.
        """,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=openapi_tags,
    )

    # Add CORS middleware (origins from CORS_ORIGINS env var, comma-separated)
    cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # Request logging and correlation ID middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = (
            request.headers.get("X-Request-ID")
            or request.headers.get("X-Correlation-ID")
            or str(uuid.uuid4())
        )
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
            duration = time.perf_counter() - start_time
            response.headers["X-Request-ID"] = request_id

            logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
            return response
        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(InvalidPayload)
    async def invalid_payload_handler(request: Request, exc: InvalidPayload):
        logger.info("Invalid alert payload", field=exc.field, error=str(exc))
        return JSONResponse(
            status_code=422,
            content={"detail": str(exc), "field": exc.field, "error_type": "invalid_payload"},
        )

    @app.exception_handler(AlertNotFound)
    async def alert_not_found_handler(request: Request, exc: AlertNotFound):
        return JSONResponse(
            status_code=404,
            content={"detail": str(exc), "error_type": "not_found"},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_type": "internal"},
        )

    # Include routers
    app.include_router(health.router, tags=["health"])
    app.include_router(alerts.router, tags=["alerts"])
    app.include_router(alerts.owner_router, tags=["owner-alerts"])
    app.include_router(notifications.router, tags=["notifications"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "service": "Deferred Alerts API",
            "version": "0.1.0",
            "docs": "/docs",
        }

    return app
