"""Raw export item → CleanedRecord.

The upstream export returns one dict per sample with every vocabulary field
present, most of them zero or empty for scales that lack the matching sensor.
Normalization keeps only fields that carry signal and rejects samples that
carry none:

    {"time": "...", "weight": "12.5", "temperature": 0, "humidity": "abc"}
        → CleanedRecord(time="...", measurements={"weight": 12.5})

Pure and total: malformed input never raises, it just drops fields.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any

from src.telemetry.base import MEASUREMENT_FIELDS, CleanedRecord, Resolution


def coerce_number(value: Any) -> float | None:
    """Coerce a raw field value to a finite float, or None if it is not numeric.

    Numeric strings are accepted after stripping whitespace; an empty string
    counts as zero.  Booleans, NaN and infinities are not numbers here.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        if "_" in text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def normalize(
    raw_item: Mapping[str, Any], entity_id: str, resolution: Resolution
) -> CleanedRecord | None:
    """Clean one raw export item.

    Args:
        raw_item:   One element of the export ``data`` array.
        entity_id:  Scale the item was fetched for.
        resolution: Resolution it was fetched at.

    Returns:
        The cleaned record, or None when no measurement field survived.
    """
    measurements: dict[str, float] = {}
    for name in MEASUREMENT_FIELDS:
        number = coerce_number(raw_item.get(name))
        if number is not None and number != 0:
            measurements[name] = number

    if not measurements:
        return None

    return CleanedRecord(
        time=raw_item.get("time"),
        entity_id=entity_id,
        resolution=resolution,
        measurements=measurements,
    )


def normalize_many(
    items: Iterable[Any], entity_id: str, resolution: Resolution
) -> tuple[list[CleanedRecord], int]:
    """Normalize a batch, returning ``(kept, rejected_count)``.

    Items that are not mappings are counted as rejected.
    """
    kept: list[CleanedRecord] = []
    rejected = 0
    for item in items:
        record = normalize(item, entity_id, resolution) if isinstance(item, Mapping) else None
        if record is None:
            rejected += 1
        else:
            kept.append(record)
    return kept, rejected
