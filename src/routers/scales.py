"""Scale catalog endpoints: refresh from upstream, list, edit display info."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter

from src.dependencies import Catalog, CronGuard, Upstream
from src.models.scales import (
    CatalogRefreshResult,
    ScaleInfoRead,
    ScaleInfoUpdate,
    ScaleList,
)

router = APIRouter(prefix="/scales", tags=["scales"])
logger = logging.getLogger("hivewatch.routers.scales")


@router.get("", response_model=ScaleList)
async def list_scales(catalog: Catalog) -> Any:
    return {"scales": await catalog.list_scales()}


@router.post("/refresh", response_model=CatalogRefreshResult, dependencies=[CronGuard])
async def refresh_catalog(catalog: Catalog, upstream: Upstream) -> Any:
    """Replace the catalog with the upstream scale list."""
    scales = await upstream.list_scales()
    count = await catalog.replace_scales(scales)
    return {"message": "Scales synced", "count": count}


@router.put("/{scale_id}", response_model=ScaleInfoRead)
async def update_scale_info(scale_id: str, body: ScaleInfoUpdate, catalog: Catalog) -> Any:
    logger.info("Updating display info for scale %s", scale_id)
    return await catalog.update_scale_info(
        scale_id, body.name, body.latitude, body.longitude
    )
