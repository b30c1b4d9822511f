"""PostgreSQL alert store.

Follows the repository pattern with asyncpg. Single-record transitions are
one ``UPDATE ... RETURNING`` statement; decisions that depend on the
current flags (delete vs. soft delete, closing a notification) lock the
row with ``SELECT ... FOR UPDATE`` inside a transaction.
"""

import logging
from typing import Any

from deferred_alerts.alerts.errors import AlertNotFound
from deferred_alerts.alerts.schemas import AlertPayload, AlertRecord, Owner
from deferred_alerts.alerts.store import (
    AlertStore,
    CloseOutcome,
    RemovalOutcome,
    check_fields,
)
from deferred_alerts.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS alerts (
    id                 BIGSERIAL PRIMARY KEY,
    realm              TEXT NOT NULL,
    owner_id           BIGINT NOT NULL,
    title              TEXT NOT NULL,
    body               TEXT NOT NULL,
    due_at             BIGINT NOT NULL,
    repeat_interval_ms BIGINT NOT NULL DEFAULT 0,
    category           TEXT NOT NULL DEFAULT '',
    tag                TEXT NOT NULL DEFAULT '',
    persistent         BOOLEAN NOT NULL DEFAULT FALSE,
    vibrate            BOOLEAN NOT NULL DEFAULT FALSE,
    triggered          BOOLEAN NOT NULL DEFAULT FALSE,
    handled            BOOLEAN NOT NULL DEFAULT FALSE,
    has_notification   BOOLEAN NOT NULL DEFAULT FALSE,
    pending_delete     BOOLEAN NOT NULL DEFAULT FALSE,
    created_at         TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_alerts_owner
    ON alerts(realm, owner_id);
CREATE INDEX IF NOT EXISTS idx_alerts_due_at
    ON alerts(due_at);
"""

_INSERT_SQL = """
INSERT INTO alerts (
    realm, owner_id, title, body, due_at, repeat_interval_ms,
    category, tag, persistent, vibrate
) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
RETURNING *
"""

# Payload column order shared by _INSERT_SQL, reset() and update()
_PAYLOAD_COLUMNS: tuple[str, ...] = (
    "title",
    "body",
    "due_at",
    "repeat_interval_ms",
    "category",
    "tag",
    "persistent",
    "vibrate",
)


def _payload_params(payload: AlertPayload) -> list[Any]:
    return [getattr(payload, column) for column in _PAYLOAD_COLUMNS]


def _row_to_record(row: Any) -> AlertRecord:
    """Convert an asyncpg Record to an AlertRecord."""
    payload = AlertPayload(
        title=row["title"],
        body=row["body"],
        due_at=row["due_at"],
        repeat_interval_ms=row["repeat_interval_ms"],
        category=row["category"],
        tag=row["tag"],
        persistent=row["persistent"],
        vibrate=row["vibrate"],
    )
    return AlertRecord(
        id=row["id"],
        owner=Owner(realm=row["realm"], owner_id=row["owner_id"]),
        payload=payload,
        triggered=row["triggered"],
        handled=row["handled"],
        has_notification=row["has_notification"],
        pending_delete=row["pending_delete"],
        created_at=row["created_at"],
    )


class PostgresAlertStore(AlertStore):
    """Alert persistence in the ``alerts`` table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the alerts table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Alerts table ensured")

    async def health_check(self) -> bool:
        return await self._db.health_check()

    async def insert(self, owner: Owner, payload: AlertPayload) -> AlertRecord:
        row = await self._db.fetchrow(
            _INSERT_SQL,
            owner.realm,
            owner.owner_id,
            *_payload_params(payload),
        )
        return _row_to_record(row)

    async def get(self, alert_id: int) -> AlertRecord | None:
        row = await self._db.fetchrow("SELECT * FROM alerts WHERE id = $1", alert_id)
        if row is None:
            return None
        return _row_to_record(row)

    async def get_all(self, owner: Owner | None = None) -> list[AlertRecord]:
        if owner is None:
            rows = await self._db.fetch("SELECT * FROM alerts ORDER BY id")
        else:
            rows = await self._db.fetch(
                "SELECT * FROM alerts WHERE realm = $1 AND owner_id = $2 ORDER BY id",
                owner.realm,
                owner.owner_id,
            )
        return [_row_to_record(row) for row in rows]

    async def update(self, alert_id: int, **fields: Any) -> AlertRecord:
        """Merge fields into a record.

        Uses dynamic SQL builder with incremental param_idx. A ``payload``
        field expands into its individual columns.
        """
        check_fields(fields)

        assignments: list[str] = []
        params: list[Any] = [alert_id]
        param_idx = 2

        payload = fields.pop("payload", None)
        if payload is not None:
            for column, value in zip(_PAYLOAD_COLUMNS, _payload_params(payload)):
                assignments.append(f"{column} = ${param_idx}")
                params.append(value)
                param_idx += 1

        for column, value in fields.items():
            assignments.append(f"{column} = ${param_idx}")
            params.append(value)
            param_idx += 1

        if assignments:
            sql = f"UPDATE alerts SET {', '.join(assignments)} WHERE id = $1 RETURNING *"
        else:
            sql = "SELECT * FROM alerts WHERE id = $1"

        row = await self._db.fetchrow(sql, *params)
        if row is None:
            raise AlertNotFound(alert_id)
        return _row_to_record(row)

    async def hard_delete(self, alert_id: int) -> bool:
        deleted = await self._db.fetchval(
            "DELETE FROM alerts WHERE id = $1 RETURNING id", alert_id,
        )
        return deleted is not None

    async def reset(self, alert_id: int, payload: AlertPayload) -> AlertRecord:
        sql = """
            UPDATE alerts SET
                title = $2, body = $3, due_at = $4, repeat_interval_ms = $5,
                category = $6, tag = $7, persistent = $8, vibrate = $9,
                triggered = FALSE, handled = FALSE
            WHERE id = $1 AND pending_delete = FALSE
            RETURNING *
        """
        row = await self._db.fetchrow(sql, alert_id, *_payload_params(payload))
        if row is None:
            raise AlertNotFound(alert_id)
        return _row_to_record(row)

    async def mark_triggered(
        self, alert_id: int, scheduled_for: int,
    ) -> AlertRecord | None:
        sql = """
            UPDATE alerts SET triggered = TRUE
            WHERE id = $1 AND due_at = $2 AND pending_delete = FALSE
            RETURNING *
        """
        row = await self._db.fetchrow(sql, alert_id, scheduled_for)
        return _row_to_record(row) if row is not None else None

    async def set_notification(
        self, alert_id: int, live: bool,
    ) -> AlertRecord | None:
        sql = """
            UPDATE alerts SET has_notification = $2
            WHERE id = $1 AND pending_delete = FALSE
            RETURNING *
        """
        row = await self._db.fetchrow(sql, alert_id, live)
        return _row_to_record(row) if row is not None else None

    async def mark_handled(self, alert_id: int) -> AlertRecord | None:
        sql = """
            UPDATE alerts SET handled = TRUE
            WHERE id = $1 AND pending_delete = FALSE
            RETURNING *
        """
        row = await self._db.fetchrow(sql, alert_id)
        return _row_to_record(row) if row is not None else None

    async def remove(self, alert_id: int) -> RemovalOutcome:
        async with self._db.transaction() as conn:
            row = await conn.fetchrow(
                "SELECT has_notification, pending_delete FROM alerts "
                "WHERE id = $1 FOR UPDATE",
                alert_id,
            )
            if row is None or row["pending_delete"]:
                return RemovalOutcome.NOT_FOUND
            if row["has_notification"]:
                await conn.execute(
                    "UPDATE alerts SET pending_delete = TRUE WHERE id = $1",
                    alert_id,
                )
                return RemovalOutcome.SOFT_DELETED
            await conn.execute("DELETE FROM alerts WHERE id = $1", alert_id)
            return RemovalOutcome.HARD_DELETED

    async def close_notification(self, alert_id: int) -> CloseOutcome:
        async with self._db.transaction() as conn:
            row = await conn.fetchrow(
                "SELECT pending_delete FROM alerts WHERE id = $1 FOR UPDATE",
                alert_id,
            )
            if row is None:
                return CloseOutcome.NOT_FOUND
            if row["pending_delete"]:
                await conn.execute("DELETE FROM alerts WHERE id = $1", alert_id)
                return CloseOutcome.DELETED
            await conn.execute(
                "UPDATE alerts SET handled = TRUE, has_notification = FALSE "
                "WHERE id = $1",
                alert_id,
            )
            return CloseOutcome.HANDLED
