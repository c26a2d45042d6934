"""Read/export endpoints for stored telemetry."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query, Response
from fastapi.responses import JSONResponse

from src.dependencies import Store
from src.telemetry.base import Resolution
from src.telemetry.errors import ValidationError
from src.telemetry.export import export_filename, records_to_csv, to_json_rows
from src.telemetry.query import ReadQuery, run_query

router = APIRouter(prefix="/scale-data", tags=["scale-data"])


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("")
async def read_scale_data(
    store: Store,
    resolution: str = Query(default="hourly"),
    latest: bool = Query(default=False),
    scale: str | None = Query(default=None, description="Comma-separated scale ids"),
    start: str | None = Query(default=None, description="ISO-8601 lower bound"),
    end: str | None = Query(default=None, description="ISO-8601 upper bound"),
    limit: int | None = Query(default=None),
    fields: str | None = Query(default=None, description="Comma-separated projection"),
    format: str = Query(default="json"),
) -> Any:
    output = format.strip().lower()
    if output not in ("json", "csv"):
        raise ValidationError("Invalid format (json|csv)")

    query = ReadQuery.from_params(
        resolution,
        scale=scale,
        start=start,
        end=end,
        limit=limit,
        fields=fields,
        latest=latest,
    )
    rows = await run_query(store, query)

    if output == "csv":
        filename = export_filename(
            query.resolution, query.entity_ids, query.start, query.end, latest=query.latest
        )
        return _csv_response(records_to_csv(rows, query.fields), filename)
    return JSONResponse(to_json_rows(rows))


@router.get("/{scale_id}")
async def read_scale_range(
    scale_id: str,
    store: Store,
    resolution: str = Query(default="hourly"),
    start: str | None = Query(default=None),
    end: str | None = Query(default=None),
) -> Any:
    query = ReadQuery.from_params(resolution, start=start, end=end)
    rows = await store.find_range(
        [scale_id], query.resolution, start=query.start, end=query.end
    )
    return JSONResponse(to_json_rows(rows))


@router.get("/{scale_id}/latest")
async def read_scale_latest(
    scale_id: str,
    store: Store,
    resolution: str = Query(default="hourly"),
    limit: int = Query(default=20, ge=1, le=1000),
) -> Any:
    """The ``limit`` most recent records of one scale, oldest first."""
    rows = await store.latest_n(scale_id, Resolution.parse(resolution), limit)
    return JSONResponse(to_json_rows(rows))
