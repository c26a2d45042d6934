"""Serialization of telemetry rows for the read/export API.

CSV columns are discovered from the data: the union of every field present
in the result rows, ordered ``entity_id, time`` first and the rest
alphabetically.  Scales without a given sensor simply leave that cell empty.

    entity_id,time,humidity,weight
    S1,2025-01-01T00:00:00Z,,12.35
    S2,2025-01-01T00:00:00Z,61.20,
"""

from __future__ import annotations

import csv
import io
import math
import re
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from src.telemetry.base import Resolution, format_timestamp

LEADING_COLUMNS: tuple[str, ...] = ("entity_id", "time")
INTERNAL_COLUMNS: frozenset[str] = frozenset({"id", "_id"})

_TWO_PLACES = Decimal("0.01")
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.+-]")


def discover_columns(
    rows: Iterable[Mapping[str, Any]], fallback: Sequence[str] | None = None
) -> list[str]:
    """Union of field names across rows, in export order.

    Args:
        rows:     Result rows.
        fallback: Names to use when there are no rows (e.g. a projection).
    """
    names: set[str] = set()
    for row in rows:
        names.update(row.keys())
    if not names:
        names = set(fallback or LEADING_COLUMNS)
    names -= INTERNAL_COLUMNS

    leading = [c for c in LEADING_COLUMNS if c in names]
    return leading + sorted(names - set(LEADING_COLUMNS))


def format_number(value: float | int | Decimal) -> str:
    """Round half-up to two decimals: 12.345 → '12.35', 12.3 → '12.30'."""
    if isinstance(value, float) and not math.isfinite(value):
        return ""
    try:
        quantized = Decimal(str(value)).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return ""
    return format(quantized, "f")


def format_cell(column: str, value: Any) -> str:
    """Render one value as CSV text (quoting is left to the csv writer)."""
    if value is None:
        return ""
    if column == "time":
        return format_timestamp(value)
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float, Decimal)):
        return format_number(value)
    if isinstance(value, datetime):
        return format_timestamp(value)
    return str(value)


def records_to_csv(
    rows: Sequence[Mapping[str, Any]], fields: Sequence[str] | None = None
) -> str:
    """Serialize rows as CSV with a data-driven header.

    Args:
        rows:   Sparse record dicts (absent fields are simply missing keys).
        fields: Requested projection, used for the header when ``rows`` is
                empty.

    Returns:
        CSV text, header first, ``\\n`` line endings.
    """
    columns = discover_columns(rows, fallback=fields)
    buffer = io.StringIO()
    # QUOTE_MINIMAL: only cells with a comma, quote or line break are quoted
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow([format_cell(c, row.get(c)) for c in columns])
    return buffer.getvalue()


def to_json_rows(rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """JSON-ready copies of rows: internal ids dropped, times as ISO-8601."""
    out = []
    for row in rows:
        item = {k: v for k, v in row.items() if k not in INTERNAL_COLUMNS}
        if "time" in item:
            item["time"] = format_timestamp(item["time"])
        out.append(item)
    return out


def export_filename(
    resolution: Resolution,
    entity_ids: Sequence[str] = (),
    start: datetime | None = None,
    end: datetime | None = None,
    latest: bool = False,
) -> str:
    """Attachment name encoding scales, resolution and the requested window.

    ``scale-data_S1+S2_hourly_2025-01-01_2025-01-31.csv``
    """
    scope = "+".join(entity_ids) if entity_ids else "all"
    parts = ["scale-data", _UNSAFE_FILENAME_CHARS.sub("-", scope), resolution.value]
    if latest:
        parts.append("latest")
    if start is not None or end is not None:
        parts.append(start.date().isoformat() if start else "begin")
        parts.append(end.date().isoformat() if end else "now")
    return "_".join(parts) + ".csv"
