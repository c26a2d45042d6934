"""Shared FastAPI dependencies injected into route handlers.

Long-lived collaborators (database, upstream client) are created once in the
app lifespan and parked on ``app.state``; these providers hand them to routes.
Tests swap them out via ``app.dependency_overrides``.
"""

from __future__ import annotations

import hmac
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from src.config import Settings, get_settings
from src.services.database import Database
from src.services.upstream import UpstreamClient
from src.telemetry.store import ScaleCatalog, TelemetryStore
from src.telemetry.sync.orchestrator import SyncOrchestrator


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_upstream(request: Request) -> UpstreamClient:
    return request.app.state.upstream


def get_telemetry_store(database: Annotated[Database, Depends(get_database)]) -> TelemetryStore:
    return TelemetryStore(database)


def get_scale_catalog(database: Annotated[Database, Depends(get_database)]) -> ScaleCatalog:
    return ScaleCatalog(database)


def get_orchestrator(
    store: Annotated[TelemetryStore, Depends(get_telemetry_store)],
    catalog: Annotated[ScaleCatalog, Depends(get_scale_catalog)],
    upstream: Annotated[UpstreamClient, Depends(get_upstream)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SyncOrchestrator:
    return SyncOrchestrator(store, catalog, upstream, settings)


async def require_cron_secret(
    request: Request, settings: Annotated[Settings, Depends(get_settings)]
) -> None:
    """Guard sync triggers with ``Authorization: Bearer <CRON_SECRET>``.

    No-op when ``cron_secret`` is not configured.
    """
    if not settings.cron_secret:
        return
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(
        token.strip().encode(), settings.cron_secret.encode()
    ):
        raise HTTPException(status_code=401, detail="Not authenticated")


# Annotated shortcuts for route signatures
AppSettings = Annotated[Settings, Depends(get_settings)]
DatabaseDep = Annotated[Database, Depends(get_database)]
Store = Annotated[TelemetryStore, Depends(get_telemetry_store)]
Catalog = Annotated[ScaleCatalog, Depends(get_scale_catalog)]
Upstream = Annotated[UpstreamClient, Depends(get_upstream)]
Orchestrator = Annotated[SyncOrchestrator, Depends(get_orchestrator)]
CronGuard = Depends(require_cron_secret)
