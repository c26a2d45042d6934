"""Postgres access via a process-owned ``asyncpg`` pool.

A single ``Database`` is created in the app lifespan, stored on
``app.state.database`` and handed to the stores that need it.  Nothing in the
code base looks the pool up globally.

Usage::

    database = Database(settings)
    await database.connect()
    async with database.connection() as conn:
        rows = await conn.fetch("SELECT * FROM scales")
    await database.close()
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import asyncpg

from src.config import Settings
from src.telemetry.base import MEASUREMENT_FIELDS, Resolution
from src.telemetry.errors import StoreError

logger = logging.getLogger("hivewatch.db")

# Errors that mean "the database could not do what we asked"
DB_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
)


def _telemetry_table_ddl(resolution: Resolution) -> str:
    measurement_columns = ",\n    ".join(
        f'"{name}" DOUBLE PRECISION' for name in MEASUREMENT_FIELDS
    )
    table = resolution.table
    return f"""
CREATE TABLE IF NOT EXISTS {table} (
    id BIGSERIAL PRIMARY KEY,
    entity_id TEXT NOT NULL,
    time TIMESTAMPTZ NOT NULL,
    {measurement_columns},
    inserted_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS {table}_entity_time_idx ON {table} (entity_id, time DESC);
"""


CATALOG_DDL = """
CREATE TABLE IF NOT EXISTS scales (
    scale_id TEXT PRIMARY KEY,
    serial_number TEXT,
    hardware_key TEXT,
    latest_transmission_timestamp TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE TABLE IF NOT EXISTS scale_info (
    scale_id TEXT PRIMARY KEY,
    name TEXT,
    latitude DOUBLE PRECISION,
    longitude DOUBLE PRECISION,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""


class Database:
    """Owner of the asyncpg connection pool."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        """Create the pool. Call once at app startup."""
        s = self._settings
        try:
            self._pool = await asyncpg.create_pool(
                s.database_url,
                min_size=s.db_pool_min_size,
                max_size=s.db_pool_max_size,
                command_timeout=s.db_command_timeout,
            )
        except DB_ERRORS as exc:
            raise StoreError(f"Could not connect to database: {exc}") from exc
        logger.info(
            "Database pool initialized (min=%d, max=%d)",
            s.db_pool_min_size, s.db_pool_max_size,
        )

    async def close(self) -> None:
        """Drain the pool. Call at app shutdown."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Database pool closed")

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise StoreError("Database pool not initialized — call connect() first")
        return self._pool

    async def ensure_schema(self) -> None:
        """Create telemetry partitions, catalog tables and time indexes."""
        async with self.connection() as conn:
            for resolution in Resolution:
                await conn.execute(_telemetry_table_ddl(resolution))
            await conn.execute(CATALOG_DDL)
        logger.info("Database schema verified")

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[asyncpg.Connection, None]:
        """Acquire a pooled connection inside a transaction.

        Database failures are re-raised as ``StoreError``.
        """
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    yield conn
        except DB_ERRORS as exc:
            raise StoreError(str(exc) or exc.__class__.__name__) from exc

    async def execute(self, query: str, *args: Any) -> str:
        """Execute a single statement and return its status."""
        async with self.connection() as conn:
            return await conn.execute(query, *args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        async with self.connection() as conn:
            return await conn.fetch(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        async with self.connection() as conn:
            return await conn.fetchval(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        async with self.connection() as conn:
            return await conn.fetchrow(query, *args)
