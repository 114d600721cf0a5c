"""Fire-and-forget live update fan-out."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from case_tracker.core.models import LiveEvent

logger = logging.getLogger(__name__)

Subscriber = Callable[[LiveEvent], Awaitable[None]]


class LiveUpdatePublisher:
    """Broadcasts live events to whoever is subscribed right now.

    No delivery guarantee, no replay, no backpressure. Publishing with no
    subscribers is a no-op, and a subscriber that raises is logged and
    otherwise ignored.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Subscriber) -> Subscriber:
        """Register ``callback``; returns it so it can be used as a decorator."""
        if callback not in self._subscribers:
            self._subscribers.append(callback)
        return callback

    def unsubscribe(self, callback: Subscriber) -> None:
        """Remove ``callback``. Unknown callbacks are ignored."""
        try:
            self._subscribers.remove(callback)
        except ValueError:
            pass

    async def publish(self, event: LiveEvent) -> None:
        # Copy: subscribers may unsubscribe while being notified
        for callback in list(self._subscribers):
            try:
                await callback(event)
            except Exception:
                logger.exception("Live subscriber failed on %s event", event.event)


class QueueSubscriber:
    """Adapts the publisher to a bounded queue for one consumer (a websocket).

    When the queue is full the newest event is dropped.
    """

    def __init__(self, maxsize: int = 256) -> None:
        self.queue: asyncio.Queue[LiveEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    async def __call__(self, event: LiveEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.debug("Live queue full, dropped %s event", event.event)

    async def get(self) -> LiveEvent:
        return await self.queue.get()
