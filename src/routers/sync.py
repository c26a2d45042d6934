"""Sync trigger endpoints, invoked by an external scheduler or an admin.

Every endpoint returns the run report; per-scale failures appear in its
``results`` and never turn the response into an error.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter

from src.dependencies import CronGuard, Orchestrator
from src.models.sync import SyncReportRead

router = APIRouter(prefix="/sync", tags=["sync"], dependencies=[CronGuard])
logger = logging.getLogger("hivewatch.routers.sync")


@router.post("/scales/{scale_id}/full", response_model=SyncReportRead)
async def full_resync_scale(scale_id: str, orchestrator: Orchestrator) -> Any:
    """Re-pull one scale's full history (hourly + daily) and replace it."""
    logger.info("Full resync requested for scale %s", scale_id)
    report = await orchestrator.run_full([scale_id])
    return SyncReportRead.model_validate(report)


@router.post("/full", response_model=SyncReportRead)
async def full_resync_all(orchestrator: Orchestrator) -> Any:
    """Full resync of every scale in the catalog."""
    report = await orchestrator.run_full()
    return SyncReportRead.model_validate(report)


@router.api_route("/hourly", methods=["GET", "POST"], response_model=SyncReportRead)
async def hourly_sync(orchestrator: Orchestrator) -> Any:
    """Incremental hourly sync: only samples newer than what is stored."""
    report = await orchestrator.run_hourly()
    return SyncReportRead.model_validate(report)


@router.api_route("/daily", methods=["GET", "POST"], response_model=SyncReportRead)
async def daily_sync(orchestrator: Orchestrator) -> Any:
    """Daily sync of the current UTC day, skipping scales already covered."""
    report = await orchestrator.run_daily()
    return SyncReportRead.model_validate(report)
