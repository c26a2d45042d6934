"""Hivewatch telemetry core.

Submodules:
    base        — Resolution, measurement vocabulary, CleanedRecord, time helpers
    normalizer  — Raw export item → CleanedRecord (or rejection)
    windows     — Fetch-window planning (full / incremental / daily)
    store       — Postgres telemetry partitions and scale catalog
    query       — Range and latest-snapshot queries
    export      — CSV / JSON serialization
    sync        — Sync orchestrator and dedup
    errors      — Exception taxonomy
"""

from src.telemetry.base import MEASUREMENT_FIELDS, CleanedRecord, Resolution
from src.telemetry.errors import (
    HivewatchError,
    StoreError,
    UpstreamFetchError,
    ValidationError,
)

__all__ = [
    "MEASUREMENT_FIELDS",
    "CleanedRecord",
    "Resolution",
    "HivewatchError",
    "StoreError",
    "UpstreamFetchError",
    "ValidationError",
]
