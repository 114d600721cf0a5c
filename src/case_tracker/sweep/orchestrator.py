"""Fetch cycle orchestration: walk the catalog, reconcile, publish, repeat."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Sequence
from typing import Protocol

from case_tracker.core.config import SweepConfig
from case_tracker.core.exceptions import StorageError
from case_tracker.core.models import (
    FetchAttempt,
    ItemId,
    ItemUpdatedEvent,
    SweepCompleteEvent,
    SweepReport,
    SweepState,
    utc_now,
)
from case_tracker.ingestion.catalog import validate_catalog
from case_tracker.ingestion.client import ClockFn, SleepFn
from case_tracker.prices.store import PriceStore, percent_change
from case_tracker.sweep.publisher import LiveUpdatePublisher

logger = logging.getLogger(__name__)


class PriceFetcher(Protocol):
    async def fetch_price(self, item_id: ItemId) -> FetchAttempt: ...


class SweepOrchestrator:
    """Drives the catalog through fetcher, store and publisher, one item at a time.

    Per item: batch/long cooldown if due -> fetch -> reconcile -> publish ->
    pace. Every item ends a sweep either updated or skipped; no failure short
    of a bug stops the sweep.

    Pacing:
        - ``pacing_seconds`` (+ up to ``pacing_jitter_seconds``) after every item.
        - ``batch_cooldown_seconds`` each time another ``batch_size`` items
          have been updated.
        - ``long_cooldown_seconds`` once ``max_requests_per_cooldown``
          requests have gone out since the last long cooldown; the request
          counter then restarts.
    """

    def __init__(
        self,
        config: SweepConfig,
        catalog: Sequence[ItemId],
        fetcher: PriceFetcher,
        store: PriceStore,
        publisher: LiveUpdatePublisher | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
        clock: ClockFn = utc_now,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config
        self._catalog = validate_catalog(list(catalog))
        self._fetcher = fetcher
        self._store = store
        self._publisher = publisher or LiveUpdatePublisher()
        self._sleep = sleep
        self._clock = clock
        self._rng = rng or random.Random()
        self.sweeps_completed = 0
        self.last_report: SweepReport | None = None

    @property
    def catalog(self) -> list[ItemId]:
        return list(self._catalog)

    @property
    def publisher(self) -> LiveUpdatePublisher:
        return self._publisher

    # --- Sweep Loop ---

    async def run_forever(self, max_sweeps: int | None = None) -> int:
        """Sweep the catalog repeatedly.

        Args:
            max_sweeps: Stop after this many sweeps. None means never stop.

        Returns:
            Number of sweeps completed.
        """
        completed = 0
        while max_sweeps is None or completed < max_sweeps:
            await self.run_sweep(sweep_number=self.sweeps_completed + 1)
            completed += 1
            if max_sweeps is not None and completed >= max_sweeps:
                break
            if self._config.sweep_interval_seconds > 0:
                logger.info(
                    "Next sweep in %.0fs", self._config.sweep_interval_seconds
                )
                await self._sleep(self._config.sweep_interval_seconds)
        return completed

    async def run_sweep(self, sweep_number: int = 1) -> SweepReport:
        """One pass over the whole catalog."""
        state = SweepState(sweep_number=sweep_number, started_at=self._clock())
        logger.info(
            "Starting sweep %d over %d items", sweep_number, len(self._catalog)
        )

        for item_id in self._catalog:
            state = await self._cooldown_if_due(state)
            state = await self._process_item(item_id, state)
            await self._pace()

        report = SweepReport(
            sweep_number=state.sweep_number,
            started_at=state.started_at,
            completed_at=self._clock(),
            items_updated=state.items_processed,
            items_skipped=state.items_skipped,
            requests_issued=state.requests_issued,
        )

        try:
            await self._store.record_sweep(report)
        except StorageError as e:
            logger.error("Could not record sweep %d: %s", sweep_number, e)

        await self._publisher.publish(
            SweepCompleteEvent(
                timestamp=report.completed_at,
                updated=report.items_updated,
                skipped=report.items_skipped,
            )
        )

        self.sweeps_completed += 1
        self.last_report = report
        logger.info(
            "Sweep %d complete: %d updated, %d skipped, %d requests in %.0fs",
            sweep_number, report.items_updated, report.items_skipped,
            report.requests_issued, report.duration_seconds,
        )
        return report

    # --- Per-Item Steps ---

    async def _process_item(self, item_id: ItemId, state: SweepState) -> SweepState:
        attempt = await self._fetcher.fetch_price(item_id)
        state = state.model_copy(
            update={
                "requests_issued": state.requests_issued + attempt.requests_issued,
                "requests_since_cooldown": state.requests_since_cooldown
                + attempt.requests_issued,
            }
        )

        observation = attempt.observation
        if observation is None:
            logger.warning("Skipped %r this sweep: %s", item_id, attempt.error)
            return state.model_copy(update={"items_skipped": state.items_skipped + 1})

        try:
            previous = await self._store.record_observation(
                item_id, observation.price, observation.observed_at
            )
        except StorageError as e:
            logger.error("Skipped %r this sweep, not persisted: %s", item_id, e)
            return state.model_copy(update={"items_skipped": state.items_skipped + 1})

        change = percent_change(previous, observation.price)
        await self._publisher.publish(
            ItemUpdatedEvent(
                item=item_id,
                price=observation.price,
                timestamp=observation.observed_at,
                percent_change=change,
            )
        )
        return state.model_copy(update={"items_processed": state.items_processed + 1})

    async def _cooldown_if_due(self, state: SweepState) -> SweepState:
        cfg = self._config
        processed = state.items_processed
        batch_due = (
            processed > 0
            and processed % cfg.batch_size == 0
            and processed != state.last_batch_cooldown_at
        )

        if state.requests_since_cooldown >= cfg.max_requests_per_cooldown:
            logger.info(
                "%d requests since last cooldown, pausing %.0fs",
                state.requests_since_cooldown, cfg.long_cooldown_seconds,
            )
            await self._sleep(cfg.long_cooldown_seconds)
            # The long pause also covers a batch boundary reached at the same time
            return state.model_copy(
                update={
                    "requests_since_cooldown": 0,
                    "last_batch_cooldown_at": processed
                    if batch_due
                    else state.last_batch_cooldown_at,
                }
            )

        if batch_due:
            logger.info(
                "Taking a %.0fs break after %d items",
                cfg.batch_cooldown_seconds, processed,
            )
            await self._sleep(cfg.batch_cooldown_seconds)
            return state.model_copy(update={"last_batch_cooldown_at": processed})

        return state

    async def _pace(self) -> None:
        delay = self._config.pacing_seconds
        if self._config.pacing_jitter_seconds > 0:
            delay += self._rng.uniform(0, self._config.pacing_jitter_seconds)
        if delay > 0:
            await self._sleep(delay)
