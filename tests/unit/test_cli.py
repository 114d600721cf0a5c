"""Tests for the CLI module."""

from __future__ import annotations

import asyncio
import json
from datetime import timedelta

import httpx
import pytest
import respx
from click.testing import CliRunner

from case_tracker.cli import _format_change, cli
from case_tracker.core.config import StorageConfig
from case_tracker.core.models import SweepReport, utc_now
from case_tracker.prices.store import create_store

PRICE_URL = "https://steamcommunity.com/market/priceoverview/"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    """Point the CLI at a temporary database and disable pacing."""
    path = str(tmp_path / "cli.db")
    monkeypatch.delenv("CASE_TRACKER_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CASE_TRACKER_STORAGE__SQLITE_PATH", path)
    monkeypatch.setenv("CASE_TRACKER_SWEEP__PACING_SECONDS", "0")
    monkeypatch.setenv("CASE_TRACKER_SWEEP__PACING_JITTER_SECONDS", "0")
    monkeypatch.setenv("CASE_TRACKER_MARKET__RATE_LIMIT", "1000")
    return path


@pytest.fixture
def seeded_db(db_path):
    async def seed():
        store = await create_store(StorageConfig(sqlite_path=db_path))
        now = utc_now()
        try:
            await store.record_observation("Chroma Case", 2.0, now - timedelta(hours=24))
            await store.record_observation("Chroma Case", 2.5, now - timedelta(minutes=5))
            await store.record_sweep(
                SweepReport(
                    sweep_number=1,
                    started_at=now - timedelta(minutes=6),
                    completed_at=now - timedelta(minutes=5),
                    items_updated=1,
                    items_skipped=0,
                    requests_issued=1,
                )
            )
        finally:
            await store.close()

    asyncio.run(seed())
    return db_path


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestFormatChange:
    def test_none(self):
        assert _format_change(None) == "N/A"

    def test_positive(self):
        assert _format_change(25.0) == "[green]+25.00%[/green]"

    def test_negative(self):
        assert _format_change(-3.5) == "[red]-3.50%[/red]"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class TestHelp:
    def test_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("sweep", "serve", "prices", "history", "status"):
            assert command in result.output


class TestStatus:
    def test_empty_database(self, runner, db_path):
        result = runner.invoke(cli, ["status"])
        assert result.exit_code == 0, result.output
        assert "Tracked items" in result.output
        assert "N/A" in result.output

    def test_seeded(self, runner, seeded_db):
        result = runner.invoke(cli, ["status"])
        assert result.exit_code == 0, result.output
        assert "Completed sweeps" in result.output
        assert "1 updated, 0 skipped" in result.output


class TestPrices:
    def test_empty(self, runner, db_path):
        result = runner.invoke(cli, ["prices"])
        assert result.exit_code == 0
        assert "No prices stored" in result.output

    def test_shows_change(self, runner, seeded_db):
        result = runner.invoke(cli, ["prices"])
        assert result.exit_code == 0, result.output
        assert "Chroma Case" in result.output
        assert "$2.50" in result.output
        assert "+25.00%" in result.output


class TestHistory:
    def test_lists_observations(self, runner, seeded_db):
        result = runner.invoke(cli, ["history", "Chroma Case"])
        assert result.exit_code == 0, result.output
        assert "$2.00" in result.output
        assert "$2.50" in result.output

    def test_hours_filter(self, runner, seeded_db):
        result = runner.invoke(cli, ["history", "Chroma Case", "--hours", "1"])
        assert result.exit_code == 0, result.output
        assert "$2.50" in result.output
        assert "$2.00" not in result.output

    def test_unknown_item(self, runner, seeded_db):
        result = runner.invoke(cli, ["history", "Nope"])
        assert result.exit_code == 1
        assert "No history" in result.output


class TestSweep:
    def test_empty_catalog_exits_1(self, runner, db_path, tmp_path):
        catalog = tmp_path / "empty.json"
        catalog.write_text("[]")
        result = runner.invoke(cli, ["sweep", "--catalog", str(catalog), "-n", "1"])
        assert result.exit_code == 1
        assert "empty" in result.output

    def test_missing_catalog_option_file(self, runner, db_path, tmp_path):
        result = runner.invoke(
            cli, ["sweep", "--catalog", str(tmp_path / "missing.json")]
        )
        assert result.exit_code == 2

    @respx.mock
    def test_single_sweep_writes_prices(self, runner, db_path, tmp_path):
        respx.get(PRICE_URL).mock(
            return_value=httpx.Response(200, json={"success": True, "lowest_price": "$1.05"})
        )
        catalog = tmp_path / "cases.json"
        catalog.write_text(json.dumps(["Chroma Case", "Glove Case"]))

        result = runner.invoke(cli, ["sweep", "--catalog", str(catalog), "-n", "1"])
        assert result.exit_code == 0, result.output
        assert "Completed 1 sweep(s)" in result.output
        assert "2 updated, 0 skipped" in result.output

        status = runner.invoke(cli, ["status"])
        assert "Tracked items" in status.output
        prices = runner.invoke(cli, ["prices"])
        assert "$1.05" in prices.output


class TestServe:
    def test_passes_config_to_uvicorn(self, runner, db_path, monkeypatch):
        calls = {}

        def fake_run(app, host, port, log_config):
            calls.update(app=app, host=host, port=port)

        monkeypatch.setattr("uvicorn.run", fake_run)
        result = runner.invoke(cli, ["serve", "--port", "8123", "--no-sweeper"])
        assert result.exit_code == 0, result.output
        assert calls["port"] == 8123
        assert calls["host"] == "0.0.0.0"
        assert calls["app"].state._pending_config.sweep.run_in_api is False
