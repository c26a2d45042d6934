"""Canonical telemetry types shared by the sync engine, store and query layer.

Scales report a sparse set of measurements per sample.  The vocabulary is
closed: anything outside ``MEASUREMENT_FIELDS`` is dropped at normalization
time, and every field in it maps to a nullable column in both resolution
tables.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from src.telemetry.errors import ValidationError

# Measurement vocabulary, in storage column order.
MEASUREMENT_FIELDS: tuple[str, ...] = (
    "weight",
    "yield",
    "temperature",
    "brood",
    "humidity",
    "rain",
    "wind_speed",
    "wind_direction",
)


class Resolution(str, Enum):
    hourly = "hourly"
    daily = "daily"

    @property
    def table(self) -> str:
        """Postgres table holding this resolution's partition."""
        return f"scale_data_{self.value}"

    @property
    def step(self) -> timedelta:
        """Sampling granularity of the upstream series."""
        return timedelta(hours=1) if self is Resolution.hourly else timedelta(days=1)

    @classmethod
    def parse(cls, value: "str | Resolution | None") -> "Resolution":
        """Parse a user-supplied resolution (case-insensitive).

        Raises:
            ValidationError: If the value is not ``hourly`` or ``daily``.
        """
        if isinstance(value, Resolution):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise ValidationError("Invalid resolution (hourly|daily)") from None


@dataclass
class CleanedRecord:
    """A normalized telemetry sample ready for storage.

    Attributes:
        time:         Sample timestamp, copied verbatim from the upstream item.
        entity_id:    Scale the sample belongs to.
        resolution:   Partition the sample is written to.
        measurements: Surviving vocabulary fields (numeric, non-zero).
    """

    time: Any
    entity_id: str
    resolution: Resolution
    measurements: dict[str, float] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------


def to_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an upstream or user-supplied timestamp into aware UTC.

    Accepts datetimes, Unix seconds, and ISO-8601 strings (``Z`` suffix and
    fractional seconds allowed).

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp.
    """
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, bool):
        raise ValueError(f"Not a timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        return to_utc(datetime.fromisoformat(text))
    raise ValueError(f"Not a timestamp: {value!r}")


def format_timestamp(value: Any) -> str:
    """Render a timestamp as ISO-8601 UTC with seconds precision.

    ``2025-01-01T00:00:00.500Z`` becomes ``2025-01-01T00:00:00Z``.  Values
    that cannot be parsed render as an empty string.
    """
    try:
        ts = parse_timestamp(value)
    except (ValueError, OverflowError, OSError):
        return ""
    return ts.replace(microsecond=0).strftime("%Y-%m-%dT%H:%M:%SZ")
