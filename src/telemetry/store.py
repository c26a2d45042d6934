"""Postgres-backed stores for telemetry partitions and the scale catalog.

Each resolution has its own table (``scale_data_hourly``, ``scale_data_daily``)
with one nullable column per measurement field.  Rows come back as sparse
dicts (NULL columns and the internal ``id`` are omitted), so callers see
exactly the fields a sample carried.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from typing import Any

import asyncpg

from src.services.database import Database
from src.telemetry.base import (
    MEASUREMENT_FIELDS,
    CleanedRecord,
    Resolution,
    parse_timestamp,
)
from src.telemetry.errors import ValidationError
from src.telemetry.windows import Window

logger = logging.getLogger("hivewatch.store")

_RECORD_COLUMNS = ", ".join(["entity_id", "time", *(f'"{f}"' for f in MEASUREMENT_FIELDS)])


def row_to_record(row: Mapping[str, Any]) -> dict[str, Any]:
    """Convert a telemetry row into its sparse output dict."""
    record: dict[str, Any] = {"entity_id": row["entity_id"], "time": row["time"]}
    for name in MEASUREMENT_FIELDS:
        value = row.get(name)
        if value is not None:
            record[name] = value
    return record


def _rows_by_table(records: Iterable[CleanedRecord]) -> dict[str, list[tuple[Any, ...]]]:
    """COPY-ready row tuples grouped by partition table."""
    by_table: dict[str, list[tuple[Any, ...]]] = {}
    for record in records:
        try:
            ts = parse_timestamp(record.time)
        except (ValueError, OverflowError, OSError) as exc:
            raise ValidationError(
                f"Record for {record.entity_id} has invalid time {record.time!r}"
            ) from exc
        row = (
            record.entity_id,
            ts,
            *(record.measurements.get(name) for name in MEASUREMENT_FIELDS),
        )
        by_table.setdefault(record.resolution.table, []).append(row)
    return by_table


async def _copy_rows(
    conn: asyncpg.Connection, by_table: Mapping[str, list[tuple[Any, ...]]]
) -> int:
    columns = ["entity_id", "time", *MEASUREMENT_FIELDS]
    inserted = 0
    for table, rows in by_table.items():
        await conn.copy_records_to_table(table, records=rows, columns=columns)
        inserted += len(rows)
    return inserted


def _status_count(status: str) -> int:
    # asyncpg returns e.g. "DELETE 12"
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


class TelemetryStore:
    """Hourly/daily telemetry partitions.

    Writes are insert-only, plus a transactional whole-partition replace for
    full resync, so a failed call never leaves a half-updated row behind.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def delete_all(self, entity_id: str, resolution: Resolution) -> int:
        """Remove every record of one entity from one partition."""
        status = await self._db.execute(
            f"DELETE FROM {resolution.table} WHERE entity_id = $1", entity_id
        )
        deleted = _status_count(status)
        logger.debug("Deleted %d %s rows for %s", deleted, resolution.value, entity_id)
        return deleted

    async def insert_many(self, records: Sequence[CleanedRecord]) -> int:
        """Bulk-insert cleaned records; returns the number written.

        Raises:
            ValidationError: If a record's time cannot be parsed.
        """
        by_table = _rows_by_table(records)
        if not by_table:
            return 0
        async with self._db.connection() as conn:
            return await _copy_rows(conn, by_table)

    async def replace_partition(
        self,
        entity_id: str,
        resolution: Resolution,
        records: Sequence[CleanedRecord],
    ) -> tuple[int, int]:
        """Swap an entity's partition for ``records`` in one transaction.

        The delete and the insert commit together; if the insert fails the
        old rows are still there.

        Returns:
            ``(deleted, inserted)`` row counts.

        Raises:
            ValidationError: If a record belongs to another entity or
                resolution, or its time cannot be parsed.
        """
        for record in records:
            if record.entity_id != entity_id or record.resolution is not resolution:
                raise ValidationError(
                    f"Record for {record.entity_id}/{record.resolution.value} "
                    f"cannot replace {entity_id}/{resolution.value}"
                )
        by_table = _rows_by_table(records)

        async with self._db.connection() as conn:
            status = await conn.execute(
                f"DELETE FROM {resolution.table} WHERE entity_id = $1", entity_id
            )
            inserted = await _copy_rows(conn, by_table)
        deleted = _status_count(status)
        logger.debug(
            "Replaced %s rows for %s: %d removed, %d inserted",
            resolution.value, entity_id, deleted, inserted,
        )
        return deleted, inserted

    async def find_range(
        self,
        entity_ids: Sequence[str] | None,
        resolution: Resolution,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Records in ``[start, end]`` ordered by time ascending.

        Either bound may be omitted.  ``entity_ids`` of None or empty means
        all entities.

        Raises:
            ValidationError: If both bounds are given and ``start >= end``.
        """
        if start is not None and end is not None and start >= end:
            raise ValidationError("'start' must be before 'end'")

        conditions: list[str] = []
        params: list[Any] = []
        idx = 1

        if entity_ids:
            conditions.append(f"entity_id = ANY(${idx}::text[])")
            params.append(list(entity_ids))
            idx += 1
        if start is not None:
            conditions.append(f"time >= ${idx}")
            params.append(start)
            idx += 1
        if end is not None:
            conditions.append(f"time <= ${idx}")
            params.append(end)
            idx += 1

        query = f"SELECT {_RECORD_COLUMNS} FROM {resolution.table}"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY time ASC, entity_id ASC"
        if limit is not None and limit > 0:
            query += f" LIMIT ${idx}"
            params.append(limit)

        rows = await self._db.fetch(query, *params)
        return [row_to_record(r) for r in rows]

    async def find_existing_times(
        self, entity_id: str, resolution: Resolution, candidate_times: Iterable[datetime]
    ) -> set[datetime]:
        """Subset of ``candidate_times`` already stored for the entity."""
        candidates = list(candidate_times)
        if not candidates:
            return set()
        rows = await self._db.fetch(
            f"SELECT time FROM {resolution.table} "
            "WHERE entity_id = $1 AND time = ANY($2::timestamptz[])",
            entity_id,
            candidates,
        )
        return {parse_timestamp(r["time"]) for r in rows}

    async def latest_per_entity(
        self, resolution: Resolution, entity_ids: Sequence[str] | None = None
    ) -> list[dict[str, Any]]:
        """Newest record of each entity, sorted by entity id."""
        query = f"SELECT DISTINCT ON (entity_id) {_RECORD_COLUMNS} FROM {resolution.table}"
        params: list[Any] = []
        if entity_ids:
            query += " WHERE entity_id = ANY($1::text[])"
            params.append(list(entity_ids))
        query += " ORDER BY entity_id ASC, time DESC"
        rows = await self._db.fetch(query, *params)
        return [row_to_record(r) for r in rows]

    async def latest_n(
        self, entity_id: str, resolution: Resolution, n: int
    ) -> list[dict[str, Any]]:
        """The ``n`` most recent records of an entity, oldest first."""
        rows = await self._db.fetch(
            f"SELECT {_RECORD_COLUMNS} FROM {resolution.table} "
            "WHERE entity_id = $1 ORDER BY time DESC LIMIT $2",
            entity_id,
            n,
        )
        return [row_to_record(r) for r in reversed(rows)]

    async def latest_time(self, entity_id: str, resolution: Resolution) -> datetime | None:
        value = await self._db.fetchval(
            f"SELECT MAX(time) FROM {resolution.table} WHERE entity_id = $1", entity_id
        )
        return parse_timestamp(value) if value is not None else None

    async def exists_in_window(
        self, entity_id: str, resolution: Resolution, window: Window
    ) -> bool:
        return bool(
            await self._db.fetchval(
                f"SELECT EXISTS (SELECT 1 FROM {resolution.table} "
                "WHERE entity_id = $1 AND time >= $2 AND time < $3)",
                entity_id,
                window.start,
                window.end,
            )
        )


class ScaleCatalog:
    """The ``scales`` table (upstream-owned) plus ``scale_info`` (user edits)."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def replace_scales(self, scales: Sequence[Mapping[str, Any]]) -> int:
        """Replace the whole catalog with the upstream list, atomically.

        Entries without a ``scale_id`` are skipped.
        """
        rows: list[tuple[Any, ...]] = []
        for scale in scales:
            scale_id = scale.get("scale_id")
            if scale_id in (None, ""):
                logger.warning("Skipping catalog entry without scale_id: %r", scale)
                continue
            transmitted = scale.get("latest_transmission_timestamp")
            try:
                transmitted_at = parse_timestamp(transmitted) if transmitted else None
            except (ValueError, OverflowError, OSError):
                transmitted_at = None
            rows.append((
                str(scale_id),
                _optional_str(scale.get("serial_number")),
                _optional_str(scale.get("hardware_key")),
                transmitted_at,
            ))

        async with self._db.connection() as conn:
            await conn.execute("DELETE FROM scales")
            await conn.executemany(
                """
                INSERT INTO scales (scale_id, serial_number, hardware_key, latest_transmission_timestamp)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (scale_id) DO NOTHING
                """,
                rows,
            )
        logger.info("Scale catalog replaced: %d scales", len(rows))
        return len(rows)

    async def list_scales(self) -> list[dict[str, Any]]:
        rows = await self._db.fetch(
            """
            SELECT s.scale_id, s.serial_number, s.hardware_key,
                   s.latest_transmission_timestamp, s.created_at, s.updated_at,
                   i.name, i.latitude, i.longitude
            FROM scales s
            LEFT JOIN scale_info i USING (scale_id)
            ORDER BY s.scale_id
            """
        )
        return [dict(r) for r in rows]

    async def list_scale_ids(self) -> list[str]:
        rows = await self._db.fetch("SELECT scale_id FROM scales ORDER BY scale_id")
        return [r["scale_id"] for r in rows]

    async def update_scale_info(
        self,
        scale_id: str,
        name: str | None,
        latitude: float | None,
        longitude: float | None,
    ) -> dict[str, Any]:
        """Upsert the user-editable attributes of a scale."""
        row = await self._db.fetchrow(
            """
            INSERT INTO scale_info (scale_id, name, latitude, longitude)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (scale_id) DO UPDATE
            SET name = EXCLUDED.name,
                latitude = EXCLUDED.latitude,
                longitude = EXCLUDED.longitude,
                updated_at = NOW()
            RETURNING scale_id, name, latitude, longitude, updated_at
            """,
            scale_id, name, latitude, longitude,
        )
        return dict(row) if row else {}


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)
