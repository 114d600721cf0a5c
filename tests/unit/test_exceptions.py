"""Tests for case_tracker.core.exceptions."""

import pytest

from case_tracker.core.exceptions import (
    CaseTrackerError,
    CatalogError,
    ConfigError,
    FetchError,
    PriceParseError,
    RateLimitError,
    StorageError,
)


class TestExceptionHierarchy:
    """Verify the exception class hierarchy."""

    def test_config_is_subclass(self):
        assert issubclass(ConfigError, CaseTrackerError)

    def test_catalog_is_subclass(self):
        assert issubclass(CatalogError, CaseTrackerError)

    def test_rate_limit_is_subclass_of_fetch(self):
        assert issubclass(RateLimitError, FetchError)
        assert issubclass(RateLimitError, CaseTrackerError)

    def test_parse_is_subclass_of_fetch(self):
        assert issubclass(PriceParseError, FetchError)

    def test_storage_is_subclass(self):
        assert issubclass(StorageError, CaseTrackerError)


class TestExceptionContext:
    """Verify context dict behavior."""

    def test_context_preserved(self):
        exc = FetchError(
            "HTTP 500 for Chroma Case",
            context={"item_id": "Chroma Case", "status_code": 500},
        )
        assert exc.context["item_id"] == "Chroma Case"
        assert exc.context["status_code"] == 500

    def test_default_context_is_empty_dict(self):
        assert StorageError("boom").context == {}

    def test_message(self):
        assert str(CatalogError("Catalog is empty")) == "Catalog is empty"

    def test_catch_by_base(self):
        with pytest.raises(CaseTrackerError):
            raise RateLimitError("429", context={"attempts": 5})
