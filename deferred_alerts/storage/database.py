"""
PostgreSQL connection pool for the alert store.

Single statements run straight on the asyncpg pool; read-modify-write
sequences (soft delete, notification close) take a connection inside a
transaction so their row locks hold until commit.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from types import TracebackType
from typing import Any

import asyncpg

from deferred_alerts.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class Database:
    """
    Async PostgreSQL pool wrapper.

    Usage:
        async with Database() as db:
            async with db.transaction() as conn:
                row = await conn.fetchrow("SELECT ... FOR UPDATE", alert_id)
                await conn.execute("DELETE FROM alerts WHERE id = $1", alert_id)
    """

    def __init__(
        self,
        database_url: str | None = None,
        min_size: int | None = None,
        max_size: int | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()

        self._database_url = database_url or str(settings.database_url)
        self._min_size = min_size or settings.db_pool_min_size
        self._max_size = max_size or settings.db_pool_max_size
        self._command_timeout = settings.db_command_timeout_seconds

        self._pool: asyncpg.Pool | None = None

    @property
    def connected(self) -> bool:
        return self._pool is not None

    @property
    def pool(self) -> asyncpg.Pool:
        """Get connection pool, raising if not connected."""
        if self._pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._pool

    async def connect(self) -> None:
        """Create the connection pool (no-op when already connected)."""
        if self._pool is not None:
            return
        try:
            self._pool = await asyncpg.create_pool(
                self._database_url,
                min_size=self._min_size,
                max_size=self._max_size,
                command_timeout=self._command_timeout,
                server_settings={"application_name": "deferred-alerts"},
            )
        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")
            raise
        logger.info(f"Database connected (pool: {self._min_size}-{self._max_size})")

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Database connection closed")

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Yield a connection inside a transaction; commits on clean exit."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def execute(self, query: str, *args: Any) -> str:
        return await self.pool.execute(query, *args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        return await self.pool.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        return await self.pool.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        return await self.pool.fetchval(query, *args)

    async def health_check(self) -> bool:
        """True if the pool can run a trivial query."""
        try:
            return await self.fetchval("SELECT 1") == 1
        except Exception as e:
            logger.warning(f"Database health check failed: {e}")
            return False
