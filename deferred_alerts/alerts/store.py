"""Alert store contract and the in-process implementation.

Every method that reads a record and writes it back based on what it saw
is a single atomic unit against the store, so timer and notification
callbacks racing a command can never interleave into an inconsistent
record. Reads here are unfiltered: hiding ``pending_delete`` records is
the engine's job.
"""

import asyncio
import enum
import itertools
from abc import ABC, abstractmethod
from typing import Any

from deferred_alerts.alerts.errors import AlertNotFound
from deferred_alerts.alerts.schemas import AlertPayload, AlertRecord, Owner


UPDATABLE_FIELDS: frozenset[str] = frozenset({
    "payload",
    "triggered",
    "handled",
    "has_notification",
    "pending_delete",
})


class RemovalOutcome(enum.Enum):
    """Result of ``AlertStore.remove``."""

    HARD_DELETED = "hard"
    SOFT_DELETED = "soft"
    NOT_FOUND = "not_found"


class CloseOutcome(enum.Enum):
    """Result of ``AlertStore.close_notification``."""

    DELETED = "deleted"
    HANDLED = "handled"
    NOT_FOUND = "not_found"


def check_fields(fields: dict[str, Any]) -> None:
    """Reject updates to anything but the mutable record fields."""
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(
            f"Cannot update alert fields {sorted(unknown)}. "
            f"Must be among: {sorted(UPDATABLE_FIELDS)}"
        )


class AlertStore(ABC):
    """Durable, queryable persistence for alert records."""

    @abstractmethod
    async def insert(self, owner: Owner, payload: AlertPayload) -> AlertRecord:
        """Persist a new record with all flags cleared.

        Ids are assigned atomically and monotonically, never reused.
        """

    @abstractmethod
    async def get(self, alert_id: int) -> AlertRecord | None:
        """Get a record by id, including records pending deletion."""

    @abstractmethod
    async def get_all(self, owner: Owner | None = None) -> list[AlertRecord]:
        """Get all records in insertion order, optionally for one owner."""

    @abstractmethod
    async def update(self, alert_id: int, **fields: Any) -> AlertRecord:
        """Merge ``fields`` into an existing record.

        Raises:
            AlertNotFound: If the record does not exist.
        """

    @abstractmethod
    async def hard_delete(self, alert_id: int) -> bool:
        """Remove a record permanently. Returns False if it was absent."""

    @abstractmethod
    async def reset(self, alert_id: int, payload: AlertPayload) -> AlertRecord:
        """Replace the payload and clear ``triggered``/``handled``.

        Raises:
            AlertNotFound: If the record is absent or pending deletion.
        """

    @abstractmethod
    async def mark_triggered(
        self, alert_id: int, scheduled_for: int,
    ) -> AlertRecord | None:
        """Set ``triggered`` if the record is live and still due at
        ``scheduled_for``. Returns None when nothing was updated."""

    @abstractmethod
    async def set_notification(
        self, alert_id: int, live: bool,
    ) -> AlertRecord | None:
        """Record whether a notification is displayed for a live record."""

    @abstractmethod
    async def mark_handled(self, alert_id: int) -> AlertRecord | None:
        """Set ``handled`` on a live record. None if absent or pending."""

    @abstractmethod
    async def remove(self, alert_id: int) -> RemovalOutcome:
        """Soft-delete when a notification is live, otherwise hard-delete."""

    @abstractmethod
    async def close_notification(self, alert_id: int) -> CloseOutcome:
        """Finish a pending delete, or mark handled and clear the
        notification flag."""

    async def health_check(self) -> bool:
        return True


class InMemoryAlertStore(AlertStore):
    """Process-local store guarded by a single asyncio lock.

    Records are copied in and out so callers never hold live references.
    Suitable for development (``ALERTS_STORE_BACKEND=memory``) and tests;
    state does not survive a restart.
    """

    def __init__(self) -> None:
        self._records: dict[int, AlertRecord] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    def _live(self, alert_id: int) -> AlertRecord | None:
        record = self._records.get(alert_id)
        if record is None or record.pending_delete:
            return None
        return record

    async def insert(self, owner: Owner, payload: AlertPayload) -> AlertRecord:
        async with self._lock:
            record = AlertRecord(owner=owner, payload=payload, id=next(self._ids))
            self._records[record.id] = record
            return record.copy()

    async def get(self, alert_id: int) -> AlertRecord | None:
        record = self._records.get(alert_id)
        return record.copy() if record is not None else None

    async def get_all(self, owner: Owner | None = None) -> list[AlertRecord]:
        return [
            record.copy()
            for record in self._records.values()
            if record.belongs_to(owner)
        ]

    async def update(self, alert_id: int, **fields: Any) -> AlertRecord:
        check_fields(fields)
        async with self._lock:
            record = self._records.get(alert_id)
            if record is None:
                raise AlertNotFound(alert_id)
            self._records[alert_id] = record.copy(**fields)
            return self._records[alert_id].copy()

    async def hard_delete(self, alert_id: int) -> bool:
        async with self._lock:
            return self._records.pop(alert_id, None) is not None

    async def reset(self, alert_id: int, payload: AlertPayload) -> AlertRecord:
        async with self._lock:
            record = self._live(alert_id)
            if record is None:
                raise AlertNotFound(alert_id)
            updated = record.copy(payload=payload, triggered=False, handled=False)
            self._records[alert_id] = updated
            return updated.copy()

    async def mark_triggered(
        self, alert_id: int, scheduled_for: int,
    ) -> AlertRecord | None:
        async with self._lock:
            record = self._live(alert_id)
            if record is None or record.payload.due_at != scheduled_for:
                return None
            updated = record.copy(triggered=True)
            self._records[alert_id] = updated
            return updated.copy()

    async def set_notification(
        self, alert_id: int, live: bool,
    ) -> AlertRecord | None:
        async with self._lock:
            record = self._live(alert_id)
            if record is None:
                return None
            updated = record.copy(has_notification=live)
            self._records[alert_id] = updated
            return updated.copy()

    async def mark_handled(self, alert_id: int) -> AlertRecord | None:
        async with self._lock:
            record = self._live(alert_id)
            if record is None:
                return None
            updated = record.copy(handled=True)
            self._records[alert_id] = updated
            return updated.copy()

    async def remove(self, alert_id: int) -> RemovalOutcome:
        async with self._lock:
            record = self._live(alert_id)
            if record is None:
                return RemovalOutcome.NOT_FOUND
            if record.has_notification:
                self._records[alert_id] = record.copy(pending_delete=True)
                return RemovalOutcome.SOFT_DELETED
            del self._records[alert_id]
            return RemovalOutcome.HARD_DELETED

    async def close_notification(self, alert_id: int) -> CloseOutcome:
        async with self._lock:
            record = self._records.get(alert_id)
            if record is None:
                return CloseOutcome.NOT_FOUND
            if record.pending_delete:
                del self._records[alert_id]
                return CloseOutcome.DELETED
            self._records[alert_id] = record.copy(
                handled=True, has_notification=False,
            )
            return CloseOutcome.HANDLED
