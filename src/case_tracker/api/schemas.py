"""API-specific response schemas (Pydantic v2)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


# -- Prices --


class PricePointResponse(BaseModel):
    """One price at one point in time."""

    price: float
    timestamp: datetime


class PriceChangeResponse(BaseModel):
    """Current price compared with the observation nearest to N hours ago."""

    item: str
    price: float
    timestamp: datetime
    hours: int
    reference_price: float | None = None
    reference_timestamp: datetime | None = None
    percent_change: float | None = None


class LastUpdatedResponse(BaseModel):
    """Completion time of the most recent full sweep."""

    last_updated: datetime | None = Field(None, serialization_alias="lastUpdated")


# -- Health --


class HealthResponse(BaseModel):
    """System health check response."""

    status: str = "ok"
    version: str
    database: str = "ok"
    tracked_items: int = 0
    history_rows: int = 0
    completed_sweeps: int = 0
    sweeper_running: bool = False
