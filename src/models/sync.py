"""Response models for sync trigger endpoints."""

from __future__ import annotations

from datetime import datetime

from src.models.base import HiveBase
from src.telemetry.base import Resolution
from src.telemetry.sync.orchestrator import SyncMode


class SyncWindowRead(HiveBase):
    start: datetime
    end: datetime


class EntitySyncResultRead(HiveBase):
    entity_id: str
    resolution: Resolution
    status: str
    message: str
    error: str | None = None
    window: SyncWindowRead | None = None
    fetched: int = 0
    kept: int = 0
    inserted: int = 0
    deleted: int = 0


class SyncReportRead(HiveBase):
    mode: SyncMode
    started_at: datetime
    finished_at: datetime | None = None
    succeeded: int
    skipped: int
    failed: int
    inserted: int
    results: list[EntitySyncResultRead]
