"""Storage layer for alert persistence."""

from deferred_alerts.storage.database import Database

__all__ = ["Database"]
