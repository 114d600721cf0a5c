"""Dependency injection for FastAPI routes."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from fastapi import Request

from case_tracker.core.config import TrackerConfig
from case_tracker.prices.store import SqlitePriceStore
from case_tracker.sweep.publisher import LiveUpdatePublisher


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: TrackerConfig
    store: SqlitePriceStore
    publisher: LiveUpdatePublisher = field(default_factory=LiveUpdatePublisher)
    sweeper: asyncio.Task | None = None

    @property
    def sweeper_running(self) -> bool:
        return self.sweeper is not None and not self.sweeper.done()


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_store(request: Request) -> SqlitePriceStore:
    """Dependency: retrieve the price store."""
    return request.app.state.app_state.store
