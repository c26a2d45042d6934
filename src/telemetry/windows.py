"""Fetch-window planning for the sync engine.

Three policies, one per trigger:

    full         — [backfill_start, now).  On-demand resync; re-pulls history.
    incremental  — [latest stored hourly sample + 1h, now), or a fixed
                   lookback when nothing is stored yet.  None once caught up.
    daily        — [today 00:00 UTC, tomorrow 00:00 UTC).

All planners take ``now`` explicitly so they stay deterministic under test.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from src.telemetry.base import Resolution, to_utc

DEFAULT_LOOKBACK = timedelta(days=3)


@dataclass(frozen=True)
class Window:
    """Half-open fetch interval ``[start, end)`` in UTC."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", to_utc(self.start))
        object.__setattr__(self, "end", to_utc(self.end))

    def to_unix(self) -> tuple[int, int]:
        """Wire representation: whole Unix seconds, floored."""
        return math.floor(self.start.timestamp()), math.floor(self.end.timestamp())

    def __str__(self) -> str:
        return f"[{self.start.isoformat()}, {self.end.isoformat()})"


def plan_full(backfill_start: datetime, now: datetime) -> Window:
    """Full-history window used by on-demand resync."""
    return Window(start=backfill_start, end=now)


def plan_incremental(
    latest_stored: datetime | None,
    now: datetime,
    lookback: timedelta = DEFAULT_LOOKBACK,
    step: timedelta = Resolution.hourly.step,
) -> Window | None:
    """Window for the frequent hourly sync.

    Args:
        latest_stored: Most recent stored hourly ``time`` for the entity.
        now:           Current time.
        lookback:      How far back to start when nothing is stored.
        step:          Granularity added to ``latest_stored``.

    Returns:
        The window, or None when the computed start is not strictly before
        ``now`` (the entity is caught up and needs no fetch).
    """
    now = to_utc(now)
    if latest_stored is None:
        start = now - lookback
    else:
        start = to_utc(latest_stored) + step
    if start >= now:
        return None
    return Window(start=start, end=now)


def plan_daily(now: datetime) -> Window:
    """Current UTC calendar day."""
    day_start = to_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)
    return Window(start=day_start, end=day_start + timedelta(days=1))
