"""FastAPI route definitions for the case-tracker API."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    Response,
    WebSocket,
    WebSocketDisconnect,
)

import case_tracker
from case_tracker.api.deps import AppState, get_app_state, get_store
from case_tracker.api.schemas import (
    HealthResponse,
    LastUpdatedResponse,
    PriceChangeResponse,
    PricePointResponse,
)
from case_tracker.core.models import utc_now
from case_tracker.prices.store import SqlitePriceStore, percent_change
from case_tracker.sweep.publisher import QueueSubscriber

logger = logging.getLogger(__name__)

router = APIRouter()


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(response: Response, state: AppState = Depends(get_app_state)):
    """System health and basic statistics; 503 when the database is unreachable."""
    if not await state.store.health_check():
        response.status_code = 503
        return HealthResponse(
            status="degraded",
            version=case_tracker.__version__,
            database="unavailable",
            sweeper_running=state.sweeper_running,
        )

    stats = await state.store.get_statistics()
    return HealthResponse(
        status="ok",
        database="ok",
        version=case_tracker.__version__,
        tracked_items=stats["tracked_items"],
        history_rows=stats["history_rows"],
        completed_sweeps=stats["completed_sweeps"],
        sweeper_running=state.sweeper_running,
    )


# -- Prices --


@router.get("/cases", response_model=dict[str, PricePointResponse])
async def list_cases(store: SqlitePriceStore = Depends(get_store)):
    """Latest price of every tracked item."""
    return await store.current_snapshot()


@router.get("/prices-history", response_model=dict[str, list[PricePointResponse]])
async def prices_history(
    hours: int | None = Query(None, ge=1, description="Only the last N hours"),
    store: SqlitePriceStore = Depends(get_store),
):
    """Every stored observation, grouped by item."""
    since = utc_now() - timedelta(hours=hours) if hours is not None else None
    return await store.history_snapshot(since=since)


@router.get("/cases/{item_id}/change", response_model=PriceChangeResponse)
async def price_change(
    item_id: str,
    hours: int = Query(24, ge=1, le=24 * 365),
    store: SqlitePriceStore = Depends(get_store),
):
    """Compare the current price with the observation closest to N hours ago."""
    current = await store.get_current(item_id)
    if current is None:
        raise HTTPException(status_code=404, detail=f"No price recorded for {item_id!r}")

    now = utc_now()
    reference = await store.nearest_observation_to(
        item_id, now - timedelta(hours=hours), now=now
    )
    return PriceChangeResponse(
        item=item_id,
        price=current.price,
        timestamp=current.observed_at,
        hours=hours,
        reference_price=reference.price if reference else None,
        reference_timestamp=reference.observed_at if reference else None,
        percent_change=percent_change(
            reference.price if reference else None, current.price
        ),
    )


@router.get("/last-updated", response_model=LastUpdatedResponse)
async def last_updated(store: SqlitePriceStore = Depends(get_store)):
    """When the last full sweep finished; null while the first is running."""
    report = await store.last_sweep()
    return LastUpdatedResponse(last_updated=report.completed_at if report else None)


# -- Live --


async def _forward_events(websocket: WebSocket, subscriber: QueueSubscriber) -> None:
    while True:
        event = await subscriber.get()
        await websocket.send_json(event.model_dump(mode="json"))


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    """Read until the client goes away; anything the client sends is ignored."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/live")
async def live_updates(websocket: WebSocket):
    """Stream item-updated and sweep-complete events as JSON.

    The connection ends when either side does: a closed client stops the
    forwarding, and a failed send stops the reading.
    """
    state: AppState = websocket.app.state.app_state
    subscriber = QueueSubscriber(maxsize=state.config.api.live_queue_size)
    state.publisher.subscribe(subscriber)
    tasks: list[asyncio.Task] = []
    try:
        await websocket.accept()
        tasks = [
            asyncio.create_task(_forward_events(websocket, subscriber)),
            asyncio.create_task(_wait_for_disconnect(websocket)),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if isinstance(exc, WebSocketDisconnect):
                continue
            if exc is not None:
                raise exc
        logger.debug("Live client disconnected")
    finally:
        state.publisher.unsubscribe(subscriber)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
