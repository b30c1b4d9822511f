"""
Dependency injection for FastAPI endpoints.

The engine and its database are process-wide singletons created by the
application lifespan (``init_dependencies``) and torn down by
``cleanup_dependencies``.
"""

from fastapi import Header, HTTPException, status

from deferred_alerts.alerts.config import AlertConfig
from deferred_alerts.alerts.engine import AlertEngine
from deferred_alerts.alerts.factory import build_engine
from deferred_alerts.alerts.schemas import Owner
from deferred_alerts.storage.database import Database

# Global service instances (initialized at startup)
_engine: AlertEngine | None = None
_database: Database | None = None


async def init_dependencies(config: AlertConfig | None = None) -> AlertEngine:
    """
    Build and start the alert engine.

    Connects to PostgreSQL only when the postgres store backend is
    configured. Restores persisted timers before events are consumed.
    """
    global _engine, _database

    if _engine is not None:
        return _engine

    config = config or AlertConfig()
    if config.store_backend == "postgres":
        _database = Database()
        await _database.connect()

    _engine = await build_engine(config, _database)
    await _engine.start()
    return _engine


async def get_engine() -> AlertEngine:
    """Get the running alert engine."""
    if _engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Alert engine is not running",
        )
    return _engine


async def get_owner(
    x_owner_realm: str = Header(..., min_length=1, description="Owner realm"),
    x_owner_id: int = Header(..., ge=0, description="Owner identifier"),
) -> Owner:
    """Resolve the calling owner from the X-Owner-Realm/X-Owner-Id headers."""
    return Owner(realm=x_owner_realm, owner_id=x_owner_id)


async def cleanup_dependencies() -> None:
    """Clean up global dependencies on shutdown."""
    global _engine, _database

    if _engine is not None:
        await _engine.stop()
        _engine = None

    if _database is not None:
        await _database.close()
        _database = None
