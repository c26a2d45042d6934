"""Read-side queries: windowed ranges, latest snapshots and projections."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.telemetry.base import Resolution, parse_timestamp
from src.telemetry.errors import ValidationError
from src.telemetry.store import TelemetryStore

logger = logging.getLogger("hivewatch.query")


def split_csv_param(value: str | None) -> list[str]:
    """``" S1, S2,,"`` → ``["S1", "S2"]``."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def parse_bound(name: str, value: str | None) -> datetime | None:
    if value is None or not value.strip():
        return None
    try:
        return parse_timestamp(value)
    except (ValueError, OverflowError, OSError):
        raise ValidationError(f"Invalid '{name}' date: {value!r}") from None


def project(record: Mapping[str, Any], fields: Sequence[str] | None) -> dict[str, Any]:
    """Keep only requested fields; no projection keeps everything.

    Unknown field names are ignored.  The internal row id is never emitted.
    """
    if not fields:
        return {k: v for k, v in record.items() if k not in ("id", "_id")}
    return {f: record[f] for f in fields if f in record and f not in ("id", "_id")}


@dataclass
class ReadQuery:
    """Validated parameters of a read/export request.

    Attributes:
        resolution: Partition to read.
        entity_ids: Scale filter; empty means every scale.
        start:      Inclusive lower bound on ``time``.
        end:        Inclusive upper bound on ``time``.
        limit:      Row cap for range queries (None = unlimited).
        fields:     Projection; empty means all fields.
        latest:     Return the newest record per scale instead of a range.
    """

    resolution: Resolution
    entity_ids: list[str] = field(default_factory=list)
    start: datetime | None = None
    end: datetime | None = None
    limit: int | None = None
    fields: list[str] = field(default_factory=list)
    latest: bool = False

    @classmethod
    def from_params(
        cls,
        resolution: str | None = "hourly",
        *,
        scale: str | None = None,
        start: str | None = None,
        end: str | None = None,
        limit: int | None = None,
        fields: str | None = None,
        latest: bool = False,
    ) -> "ReadQuery":
        """Parse raw request parameters.

        Raises:
            ValidationError: On a bad resolution, unparseable date, negative
                limit, or a window with ``start >= end``.
        """
        if limit is not None and limit < 0:
            raise ValidationError("Invalid 'limit' (must be >= 0)")
        query = cls(
            resolution=Resolution.parse(resolution or "hourly"),
            entity_ids=split_csv_param(scale),
            start=parse_bound("start", start),
            end=parse_bound("end", end),
            limit=limit if limit is not None and limit > 0 else None,
            fields=split_csv_param(fields),
            latest=latest,
        )
        if query.start is not None and query.end is not None and query.start >= query.end:
            raise ValidationError("Invalid 'start'/'end' window: 'start' must be before 'end'")
        return query


async def run_query(store: TelemetryStore, query: ReadQuery) -> list[dict[str, Any]]:
    """Execute a read query against the store.

    Latest mode returns one record per scale sorted by scale id; range mode
    returns records sorted by time ascending.
    """
    if query.latest:
        records = await store.latest_per_entity(query.resolution, query.entity_ids or None)
    else:
        records = await store.find_range(
            query.entity_ids or None,
            query.resolution,
            start=query.start,
            end=query.end,
            limit=query.limit,
        )
    logger.debug(
        "Query %s (latest=%s, scales=%s) → %d rows",
        query.resolution.value, query.latest, query.entity_ids or "all", len(records),
    )
    return [project(r, query.fields) for r in records]
