"""Pydantic data models: the system's type contracts."""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

# --- Type Aliases ---

ItemId = str


def utc_now() -> datetime:
    """Default clock: timezone-aware current UTC time."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# --- Price Models ---


class PriceObservation(BaseModel):
    """One successfully fetched price for one item."""

    model_config = ConfigDict(frozen=True)

    item_id: ItemId
    price: float
    observed_at: datetime

    @field_validator("item_id")
    @classmethod
    def item_id_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("item_id must not be blank")
        return v

    @field_validator("price")
    @classmethod
    def price_non_negative(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError(f"price must be finite, got {v}")
        if v < 0:
            raise ValueError(f"price must be >= 0, got {v}")
        return v

    @field_validator("observed_at")
    @classmethod
    def observed_at_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class FetchAttempt(BaseModel):
    """Outcome of fetching one item, including its retry bookkeeping.

    Exactly one of ``observation`` / ``error`` is set.
    """

    model_config = ConfigDict(frozen=True)

    item_id: ItemId
    attempts: int = 0
    requests_issued: int = 0
    observation: PriceObservation | None = None
    error: str | None = None
    rate_limited: bool = False

    @property
    def succeeded(self) -> bool:
        return self.observation is not None


# --- Sweep Models ---


class SweepState(BaseModel):
    """Counters for a sweep in progress. Replaced, never mutated."""

    model_config = ConfigDict(frozen=True)

    sweep_number: int = 1
    started_at: datetime
    items_processed: int = 0
    items_skipped: int = 0
    requests_issued: int = 0
    requests_since_cooldown: int = 0
    last_batch_cooldown_at: int = 0


class SweepReport(BaseModel):
    """Summary of one complete pass over the catalog."""

    model_config = ConfigDict(frozen=True)

    sweep_number: int
    started_at: datetime
    completed_at: datetime
    items_updated: int
    items_skipped: int
    requests_issued: int

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


# --- Live Events ---


class ItemUpdatedEvent(BaseModel):
    """Emitted once per successfully reconciled item."""

    model_config = ConfigDict(frozen=True)

    event: Literal["item-updated"] = "item-updated"
    item: ItemId
    price: float
    timestamp: datetime
    percent_change: float | None = None


class SweepCompleteEvent(BaseModel):
    """Emitted once per full catalog pass."""

    model_config = ConfigDict(frozen=True)

    event: Literal["sweep-complete"] = "sweep-complete"
    timestamp: datetime
    updated: int = 0
    skipped: int = 0


LiveEvent = ItemUpdatedEvent | SweepCompleteEvent
