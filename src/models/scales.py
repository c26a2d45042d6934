"""Pydantic models for the scale catalog."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from src.models.base import HiveBase, TimestampMixin


class ScaleRead(HiveBase, TimestampMixin):
    scale_id: str
    serial_number: str | None = None
    hardware_key: str | None = None
    latest_transmission_timestamp: datetime | None = None
    # user-editable, kept across catalog refreshes
    name: str | None = None
    latitude: float | None = None
    longitude: float | None = None


class ScaleList(HiveBase):
    scales: list[ScaleRead]


class ScaleInfoUpdate(HiveBase):
    name: str | None = Field(default=None, max_length=200)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)


class ScaleInfoRead(HiveBase):
    scale_id: str
    name: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    updated_at: datetime | None = None


class CatalogRefreshResult(HiveBase):
    message: str
    count: int
