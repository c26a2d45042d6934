"""Sync orchestrator: upstream export → normalized, deduplicated partitions.

One run per external trigger.  For every scale in the catalog:

1. Plan the fetch window (full / incremental / daily policy)
2. Fetch raw items from the export API
3. Normalize, dropping samples with no signal
4. Write:
   - full resync: replace the partition with the fresh set in one transaction
   - hourly/daily: re-read existing times, insert only the unseen ones
5. Record the outcome in the run report

Scales are processed concurrently up to ``sync_max_concurrency``; the steps
for one scale run strictly in order.  A failure for one scale is recorded and
never aborts its siblings.  Nothing is retried; the next trigger is the
retry.

Write policy per resolution: delete-then-insert happens only on an explicit
full resync.  Scheduled hourly and daily runs are append-only; the daily
"already have today" guard is a fast-path skip on top of that.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

from src.config import Settings
from src.services.upstream import UpstreamClient
from src.telemetry.base import CleanedRecord, Resolution
from src.telemetry.errors import HivewatchError
from src.telemetry.normalizer import normalize_many
from src.telemetry.store import ScaleCatalog, TelemetryStore
from src.telemetry.sync.dedup import candidate_times, select_new_records
from src.telemetry.windows import Window, plan_daily, plan_full, plan_incremental

logger = logging.getLogger("hivewatch.sync.orchestrator")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncMode(str, Enum):
    full = "full"
    hourly = "hourly"
    daily = "daily"


@dataclass
class EntitySyncResult:
    """Outcome for one scale + resolution within a run.

    Attributes:
        entity_id:  Scale id.
        resolution: Partition that was synced.
        status:     'success', 'skipped' or 'error'.
        message:    Human-readable summary.
        error:      Error text when status == 'error'.
        window:     Fetch window, if one was planned.
        fetched:    Raw items returned by the export API.
        kept:       Items that survived normalization.
        inserted:   Rows written.
        deleted:    Rows removed (full resync only).
    """

    entity_id: str
    resolution: Resolution
    status: str = "success"
    message: str = ""
    error: str | None = None
    window: Window | None = None
    fetched: int = 0
    kept: int = 0
    inserted: int = 0
    deleted: int = 0


@dataclass
class SyncReport:
    """Aggregate of one orchestrator run (never persisted)."""

    mode: SyncMode
    started_at: datetime
    finished_at: datetime | None = None
    results: list[EntitySyncResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.status == "success")

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.status == "skipped")

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status == "error")

    @property
    def inserted(self) -> int:
        return sum(r.inserted for r in self.results)


class SyncOrchestrator:
    """Drive plan → fetch → normalize → dedup → store for every scale.

    Usage::

        orchestrator = SyncOrchestrator(store, catalog, upstream, settings)
        report = await orchestrator.run_hourly()
    """

    def __init__(
        self,
        store: TelemetryStore,
        catalog: ScaleCatalog,
        upstream: UpstreamClient,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._upstream = upstream
        self._settings = settings
        self._clock = clock

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run_full(self, entity_ids: Sequence[str] | None = None) -> SyncReport:
        """Re-pull full history for both resolutions and replace partitions.

        Args:
            entity_ids: Scales to resync; None means the whole catalog.
        """
        now = self._clock()
        window = plan_full(self._settings.backfill_start, now)

        async def job(entity_id: str) -> list[EntitySyncResult]:
            results = []
            for resolution in Resolution:
                results.append(
                    await self._guarded(entity_id, resolution, self._sync_full, window)
                )
            return results

        return await self._run(SyncMode.full, now, entity_ids, job)

    async def run_hourly(self) -> SyncReport:
        """Incremental hourly sync for every catalog scale."""
        now = self._clock()

        async def job(entity_id: str) -> list[EntitySyncResult]:
            return [
                await self._guarded(entity_id, Resolution.hourly, self._sync_incremental, now)
            ]

        return await self._run(SyncMode.hourly, now, None, job)

    async def run_daily(self) -> SyncReport:
        """Sync the current UTC day's daily sample for every catalog scale."""
        now = self._clock()
        window = plan_daily(now)

        async def job(entity_id: str) -> list[EntitySyncResult]:
            return [
                await self._guarded(entity_id, Resolution.daily, self._sync_daily, window)
            ]

        return await self._run(SyncMode.daily, now, None, job)

    # ------------------------------------------------------------------
    # Run plumbing
    # ------------------------------------------------------------------

    async def _run(
        self,
        mode: SyncMode,
        now: datetime,
        entity_ids: Sequence[str] | None,
        job: Callable[[str], Awaitable[list[EntitySyncResult]]],
    ) -> SyncReport:
        report = SyncReport(mode=mode, started_at=now)
        if entity_ids is None:
            entity_ids = await self._catalog.list_scale_ids()

        if not entity_ids:
            logger.info("Sync %s: no scales to sync", mode.value)
        else:
            logger.info("Sync %s: running for %d scales", mode.value, len(entity_ids))
            semaphore = asyncio.Semaphore(max(self._settings.sync_max_concurrency, 1))

            async def bounded(entity_id: str) -> list[EntitySyncResult]:
                async with semaphore:
                    return await job(entity_id)

            for results in await asyncio.gather(*(bounded(e) for e in entity_ids)):
                report.results.extend(results)

        report.finished_at = self._clock()
        logger.info(
            "Sync %s complete: %d ok, %d skipped, %d errors, %d rows inserted",
            mode.value, report.succeeded, report.skipped, report.failed, report.inserted,
        )
        return report

    async def _guarded(
        self,
        entity_id: str,
        resolution: Resolution,
        step: Callable[..., Awaitable[None]],
        arg: object,
    ) -> EntitySyncResult:
        """Run one per-entity step, turning failures into an error result."""
        result = EntitySyncResult(entity_id=entity_id, resolution=resolution)
        try:
            await step(result, arg)
        except HivewatchError as exc:
            result.status = "error"
            result.error = str(exc)
            result.message = f"Failed to sync {resolution.value} data for scale {entity_id}"
            logger.warning(
                "Sync error for %s/%s: %s", entity_id, resolution.value, exc
            )
        except Exception as exc:
            result.status = "error"
            result.error = f"Unexpected error: {exc}"
            result.message = f"Failed to sync {resolution.value} data for scale {entity_id}"
            logger.error(
                "Unexpected sync failure for %s/%s", entity_id, resolution.value,
                exc_info=True,
            )
        return result

    # ------------------------------------------------------------------
    # Per-entity steps
    # ------------------------------------------------------------------

    async def _sync_full(self, result: EntitySyncResult, window: Window) -> None:
        records = await self._fetch(result, window)
        if not result.fetched:
            # An empty export is not evidence that history is gone
            result.message = (
                f"No {result.resolution.value} data received for scale "
                f"{result.entity_id}; stored data left untouched"
            )
            return
        batch = select_new_records(records, ())

        # Delete and insert share one transaction
        result.deleted, result.inserted = await self._store.replace_partition(
            result.entity_id, result.resolution, batch.new
        )
        result.message = (
            f"Replaced {result.resolution.value} data for scale {result.entity_id}: "
            f"{result.deleted} removed, {result.inserted} saved"
        )
        logger.info(
            "%s/%s full resync: kept %d of %d, saved %d (removed %d)",
            result.entity_id, result.resolution.value,
            result.kept, result.fetched, result.inserted, result.deleted,
        )

    async def _sync_incremental(self, result: EntitySyncResult, now: datetime) -> None:
        latest = await self._store.latest_time(result.entity_id, result.resolution)
        window = plan_incremental(
            latest,
            now,
            lookback=timedelta(days=self._settings.incremental_lookback_days),
            step=result.resolution.step,
        )
        if window is None:
            result.status = "skipped"
            result.message = f"Scale {result.entity_id} is up to date"
            logger.debug("%s/hourly up to date (latest %s)", result.entity_id, latest)
            return

        records = await self._fetch(result, window)
        await self._append(result, records)

    async def _sync_daily(self, result: EntitySyncResult, window: Window) -> None:
        result.window = window
        if await self._store.exists_in_window(result.entity_id, result.resolution, window):
            result.status = "skipped"
            result.message = (
                f"Daily data for {window.start.date().isoformat()} already stored "
                f"for scale {result.entity_id}"
            )
            return

        records = await self._fetch(result, window)
        await self._append(result, records)

    async def _fetch(self, result: EntitySyncResult, window: Window) -> list[CleanedRecord]:
        """Fetch and normalize; fills the fetched/kept counters."""
        result.window = window
        items = await self._upstream.export(result.entity_id, result.resolution, window)
        records, _ = normalize_many(items, result.entity_id, result.resolution)
        result.fetched = len(items)
        result.kept = len(records)
        if not items:
            logger.info("No %s data received for %s", result.resolution.value, result.entity_id)
        return records

    async def _append(self, result: EntitySyncResult, records: list[CleanedRecord]) -> None:
        """Two-phase dedup write: read existing keys, insert the complement."""
        if not records:
            result.message = f"No new {result.resolution.value} data for scale {result.entity_id}"
            return

        existing = await self._store.find_existing_times(
            result.entity_id, result.resolution, candidate_times(records)
        )
        batch = select_new_records(records, existing)
        result.inserted = await self._store.insert_many(batch.new)
        result.message = (
            f"Saved {result.inserted} new {result.resolution.value} records "
            f"for scale {result.entity_id}"
        )
        logger.info(
            "%s/%s: kept %d of %d, %d already stored, saved %d",
            result.entity_id, result.resolution.value,
            result.kept, result.fetched, batch.duplicates, result.inserted,
        )
