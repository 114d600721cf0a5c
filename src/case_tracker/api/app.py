"""FastAPI application factory."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from case_tracker.api.deps import AppState
from case_tracker.api.routes import router
from case_tracker.core.config import TrackerConfig, load_config
from case_tracker.core.exceptions import (
    CaseTrackerError,
    CatalogError,
    ConfigError,
    StorageError,
)
from case_tracker.ingestion.catalog import load_catalog
from case_tracker.ingestion.client import MarketClient
from case_tracker.prices.store import create_store
from case_tracker.sweep.orchestrator import SweepOrchestrator
from case_tracker.sweep.publisher import LiveUpdatePublisher

logger = logging.getLogger(__name__)


async def _run_sweeper(state: AppState, catalog: list[str]) -> None:
    """Background task: sweep forever, sharing store and publisher with the API."""
    async with MarketClient(state.config.market) as client:
        orchestrator = SweepOrchestrator(
            state.config.sweep,
            catalog,
            client,
            state.store,
            state.publisher,
        )
        await orchestrator.run_forever()


def _log_sweeper_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Sweeper stopped: %s", exc, exc_info=exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    config = app.state._pending_config or load_config()

    # Read the catalog before opening the store so a bad one leaks nothing
    catalog = load_catalog(config.sweep.catalog_path) if config.sweep.run_in_api else None
    if catalog is None:
        logger.warning(
            "Sweeper not embedded (sweep.run_in_api is false); "
            "/api/live will not emit events from this process"
        )

    store = await create_store(config.storage)
    state = AppState(config=config, store=store, publisher=LiveUpdatePublisher())
    try:
        if catalog is not None:
            state.sweeper = asyncio.create_task(
                _run_sweeper(state, catalog), name="sweeper"
            )
            state.sweeper.add_done_callback(_log_sweeper_exit)
        app.state.app_state = state

        yield

    finally:
        if state.sweeper is not None:
            state.sweeper.cancel()
            # Failures were already logged by _log_sweeper_exit
            await asyncio.gather(state.sweeper, return_exceptions=True)
        await store.close()


def create_app(config: TrackerConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    import case_tracker

    app = FastAPI(
        title="Case Tracker API",
        description="Market case prices, history and live updates",
        version=case_tracker.__version__,
        lifespan=lifespan,
    )

    # Stash config so lifespan can retrieve it
    app.state._pending_config = config

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    # Exception handlers
    @app.exception_handler(CaseTrackerError)
    async def tracker_exception_handler(request: Request, exc: CaseTrackerError):
        status_map = {
            ConfigError: 400,
            CatalogError: 500,
            StorageError: 500,
        }
        status = status_map.get(type(exc), 500)
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    return app
