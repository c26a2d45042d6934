"""Health check endpoint — public, no auth required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from src.dependencies import AppSettings, DatabaseDep
from src.telemetry.errors import StoreError

router = APIRouter(tags=["system"])
logger = logging.getLogger("hivewatch.health")


@router.get("/health")
async def health_check(database: DatabaseDep, settings: AppSettings) -> dict:
    """Liveness probe. Returns 200 if the API process is up.

    Also performs a lightweight DB connectivity check.
    """
    db_ok = False
    try:
        await database.fetchval("SELECT 1")
        db_ok = True
    except StoreError as exc:
        logger.warning("Health check DB probe failed: %s", exc)

    return {
        "status": "healthy" if db_ok else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "database": "connected" if db_ok else "unreachable",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
