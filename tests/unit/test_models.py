"""Tests for case_tracker.core.models."""

from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from case_tracker.core.models import (
    FetchAttempt,
    PriceObservation,
    SweepReport,
    SweepState,
    ensure_utc,
    utc_now,
)


class TestPriceObservation:
    def test_valid_construction(self, base_time):
        obs = PriceObservation(item_id="Chroma Case", price=0.42, observed_at=base_time)
        assert obs.price == 0.42
        assert obs.observed_at == base_time

    def test_negative_price_rejected(self, base_time):
        with pytest.raises(ValidationError, match="price must be >= 0"):
            PriceObservation(item_id="Chroma Case", price=-0.01, observed_at=base_time)

    def test_infinite_price_rejected(self, base_time):
        with pytest.raises(ValidationError, match="finite"):
            PriceObservation(item_id="Chroma Case", price=float("inf"), observed_at=base_time)

    def test_blank_item_rejected(self, base_time):
        with pytest.raises(ValidationError, match="blank"):
            PriceObservation(item_id="  ", price=1.0, observed_at=base_time)

    def test_offset_converted_to_utc(self):
        plus_two = timezone(timedelta(hours=2))
        obs = PriceObservation(
            item_id="A", price=1.0, observed_at=datetime(2025, 3, 1, 14, 0, tzinfo=plus_two)
        )
        assert obs.observed_at == datetime(2025, 3, 1, 12, 0, tzinfo=UTC)
        assert obs.observed_at.tzinfo == UTC

    def test_frozen(self, base_time):
        obs = PriceObservation(item_id="A", price=1.0, observed_at=base_time)
        with pytest.raises(ValidationError):
            obs.price = 2.0


class TestFetchAttempt:
    def test_succeeded(self, base_time):
        obs = PriceObservation(item_id="A", price=1.0, observed_at=base_time)
        attempt = FetchAttempt(item_id="A", attempts=0, requests_issued=1, observation=obs)
        assert attempt.succeeded

    def test_failed(self):
        attempt = FetchAttempt(
            item_id="A", attempts=5, requests_issued=5, error="429", rate_limited=True
        )
        assert not attempt.succeeded


class TestSweepModels:
    def test_state_defaults(self, base_time):
        state = SweepState(started_at=base_time)
        assert state.items_processed == 0
        assert state.last_batch_cooldown_at == 0

    def test_state_copy_update(self, base_time):
        state = SweepState(started_at=base_time)
        nxt = state.model_copy(update={"items_processed": 1})
        assert state.items_processed == 0
        assert nxt.items_processed == 1

    def test_report_duration(self, base_time):
        report = SweepReport(
            sweep_number=1,
            started_at=base_time,
            completed_at=base_time + timedelta(minutes=2),
            items_updated=40,
            items_skipped=2,
            requests_issued=44,
        )
        assert report.duration_seconds == 120.0


class TestTimeHelpers:
    def test_utc_now_is_aware(self):
        assert utc_now().tzinfo is not None

    def test_ensure_utc_naive(self):
        assert ensure_utc(datetime(2025, 1, 1)) == datetime(2025, 1, 1, tzinfo=UTC)
