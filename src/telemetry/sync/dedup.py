"""Write-time deduplication for telemetry partitions.

Partitions have no UNIQUE constraint; uniqueness of ``time`` within an
(entity_id, resolution) partition is enforced by a two-phase protocol run
immediately before every insert:

    1. read existing keys   — store.find_existing_times(entity, resolution, candidates)
    2. insert the complement — select_new_records(records, existing)

Step 2 is pure, so the whole decision is testable against a snapshot of the
existing keys.  A concurrent run may race between the two steps; both runs
compute the same complement from the same upstream data, and the next run's
re-read converges the partition.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from src.telemetry.base import CleanedRecord, parse_timestamp

logger = logging.getLogger("hivewatch.sync.dedup")


@dataclass
class DedupResult:
    """Outcome of comparing a normalized batch with stored keys.

    Attributes:
        new:        Records whose time is not stored yet, first occurrence only.
        duplicates: Records dropped because their time is already stored or
                    repeats earlier in the batch.
        invalid:    Records dropped because their time could not be parsed.
    """

    new: list[CleanedRecord] = field(default_factory=list)
    duplicates: int = 0
    invalid: int = 0


def candidate_times(records: Iterable[CleanedRecord]) -> list[datetime]:
    """Parsed, de-duplicated times of a batch (unparseable times skipped)."""
    seen: set[datetime] = set()
    times: list[datetime] = []
    for record in records:
        try:
            ts = parse_timestamp(record.time)
        except (ValueError, OverflowError, OSError):
            continue
        if ts not in seen:
            seen.add(ts)
            times.append(ts)
    return times


def select_new_records(
    records: Iterable[CleanedRecord], existing_times: Iterable[datetime]
) -> DedupResult:
    """Return the records whose time is absent from ``existing_times``.

    Also collapses repeated times inside the batch, keeping the first.
    """
    seen = set(existing_times)
    result = DedupResult()
    for record in records:
        try:
            ts = parse_timestamp(record.time)
        except (ValueError, OverflowError, OSError):
            logger.warning(
                "Dropping %s record for %s with unparseable time %r",
                record.resolution.value, record.entity_id, record.time,
            )
            result.invalid += 1
            continue
        if ts in seen:
            result.duplicates += 1
            continue
        seen.add(ts)
        result.new.append(record)
    return result
