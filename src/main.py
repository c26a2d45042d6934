"""Hivewatch API — FastAPI application entry point.

Run locally:
    uvicorn src.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.config import get_settings
from src.middleware.rate_limit import RateLimitMiddleware
from src.middleware.security import SecurityHeadersMiddleware
from src.models.base import ErrorDetail
from src.routers import health, scale_data, scales, sync
from src.services.database import Database
from src.services.upstream import UpstreamClient
from src.telemetry.errors import StoreError, UpstreamFetchError, ValidationError

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("hivewatch")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks.

    Owns the database pool and the upstream HTTP client for the lifetime of
    the process; routes reach them through ``src.dependencies``.
    """
    settings = get_settings()
    logging.getLogger("hivewatch").setLevel(settings.log_level.upper())
    logger.info(
        "Starting %s API v%s [%s]",
        settings.app_name,
        settings.app_version,
        settings.environment,
    )
    database = Database(settings)
    await database.connect()
    await database.ensure_schema()
    upstream = UpstreamClient(settings)
    app.state.database = database
    app.state.upstream = upstream
    try:
        yield
    finally:
        await upstream.aclose()
        await database.close()
        logger.info("Hivewatch API shut down")


# ---------- Error handlers ----------

async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=400, content=ErrorDetail(error=str(exc)).model_dump())


async def upstream_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.warning("Upstream failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content=ErrorDetail(error=str(exc)).model_dump())


async def store_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Store failure on %s", request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content=ErrorDetail(error="Internal Server Error").model_dump())


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # First failing parameter only: "Invalid 'limit': Input should be a valid integer"
    errors = exc.errors()
    if errors:
        loc = [
            str(part)
            for part in errors[0].get("loc", ())
            if part not in ("query", "path", "body")
        ]
        name = ".".join(loc) or "request"
        message = f"Invalid '{name}': {errors[0].get('msg', 'invalid value')}"
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content=ErrorDetail(error=message).model_dump())


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorDetail(error=str(exc.detail)).model_dump(),
        headers=getattr(exc, "headers", None),
    )


# ---------- App factory ----------

def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=f"{settings.app_name} API",
        description=(
            "Beehive scale telemetry — scheduled sync from the scale export API, "
            "hourly/daily storage, range queries and CSV export."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(UpstreamFetchError, upstream_error_handler)
    app.add_exception_handler(StoreError, store_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    # ---------- Middleware (order matters — outermost first) ----------

    # Security headers on every response
    app.add_middleware(SecurityHeadersMiddleware, settings=settings)

    # Rate limiting
    app.add_middleware(RateLimitMiddleware, settings=settings)

    # CORS — must be the innermost middleware so it can handle preflight
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=[
            "Content-Disposition",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "Retry-After",
        ],
    )

    # ---------- Health check (outside v1 prefix — always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    v1_prefix = "/api/v1"

    app.include_router(sync.router, prefix=v1_prefix)
    app.include_router(scale_data.router, prefix=v1_prefix)
    app.include_router(scales.router, prefix=v1_prefix)

    return app


app = create_app()
