"""Shared pytest fixtures for case-tracker."""

from datetime import UTC, datetime, timedelta

import pytest

from case_tracker.core.config import MarketConfig, StorageConfig, SweepConfig, TrackerConfig
from case_tracker.prices.store import SqlitePriceStore

PRICE_URL = "https://steamcommunity.com/market/priceoverview/"


class RecordingSleep:
    """Stands in for asyncio.sleep; remembers every requested delay."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


class SteppingClock:
    """Deterministic clock advancing by a fixed step on each call."""

    def __init__(self, start: datetime, step: timedelta = timedelta(seconds=1)) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def base_time() -> datetime:
    return datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def clock(base_time: datetime) -> SteppingClock:
    return SteppingClock(base_time)


@pytest.fixture
def market_config() -> MarketConfig:
    return MarketConfig(
        base_delay_ms=1000,
        max_retries=5,
        rate_limit=1000,
        request_timeout=5,
    )


@pytest.fixture
def sweep_config() -> SweepConfig:
    """No pacing or jitter; cooldowns stay visible through RecordingSleep."""
    return SweepConfig(
        pacing_seconds=0,
        pacing_jitter_seconds=0,
        batch_size=20,
        batch_cooldown_seconds=30,
        max_requests_per_cooldown=100,
        long_cooldown_seconds=300,
    )


@pytest.fixture
def tracker_config(tmp_path, market_config, sweep_config) -> TrackerConfig:
    return TrackerConfig(
        market=market_config,
        sweep=sweep_config,
        storage=StorageConfig(sqlite_path=str(tmp_path / "tracker.db")),
    )


@pytest.fixture
async def store():
    """An initialized in-memory SqlitePriceStore."""
    s = SqlitePriceStore(StorageConfig(sqlite_path=":memory:"))
    await s.initialize()
    yield s
    await s.close()
