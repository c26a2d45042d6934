"""Application configuration loaded from environment variables."""

from datetime import datetime
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "Hivewatch"
    app_version: str = "0.1.0"
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Database ---
    database_url: str  # postgres connection string for asyncpg
    db_pool_min_size: int = 2
    db_pool_max_size: int = 20
    db_command_timeout: float = 30.0

    # --- Upstream telemetry API ---
    upstream_api_base_url: str
    upstream_api_token: str  # server-side only
    upstream_export_path: str = "/user/scale/export"
    upstream_catalog_path: str = "/user/scale"
    upstream_timeout_seconds: float = 30.0

    # --- Sync ---
    backfill_start: datetime = datetime.fromisoformat("2025-03-07T00:00:00+00:00")
    incremental_lookback_days: int = 3
    sync_max_concurrency: int = 5
    cron_secret: str | None = None  # when set, sync triggers require it as a bearer token

    # --- Rate Limiting ---
    rate_limit_per_minute: int = 120

    # --- CORS ---
    cors_origins: list[str] = ["*"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
