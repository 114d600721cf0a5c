"""Integration test fixtures: real client, store and orchestrator, mocked network."""

from __future__ import annotations

from pathlib import Path

import pytest

from case_tracker.core.config import StorageConfig
from case_tracker.prices.store import SqlitePriceStore


@pytest.fixture
async def integration_store(tmp_path: Path) -> SqlitePriceStore:
    """An initialized file-backed SqlitePriceStore."""
    store = SqlitePriceStore(StorageConfig(sqlite_path=str(tmp_path / "integration.db")))
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def catalog() -> list[str]:
    return ["Chroma Case", "Dreams & Nightmares Case", "Fever Case"]
