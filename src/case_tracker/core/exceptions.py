"""Custom exception hierarchy for case-tracker."""

from typing import Any


class CaseTrackerError(Exception):
    """Base exception for all case-tracker errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(CaseTrackerError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field (str): the config field that failed validation
        value (Any): the invalid value
    """


class CatalogError(CaseTrackerError):
    """The item catalog is missing, unreadable, malformed or empty.

    Policy: fatal. There is nothing to sweep.

    Context keys:
        path (str): the catalog file
    """


class FetchError(CaseTrackerError):
    """Failed to obtain a price for one item from the market endpoint.

    Policy: log and skip the item. Do not abort the sweep.

    Context keys:
        item_id (str): the item that failed
        status_code (int | None): HTTP status if a response was received
    """


class RateLimitError(FetchError):
    """Market endpoint kept answering HTTP 429 until retries ran out.

    Policy: backoff and retry (handled by MarketClient internally), then skip.

    Context keys:
        attempts (int): rate-limited attempts made
    """


class PriceParseError(FetchError):
    """Response body could not be turned into a price.

    Policy: skip the item, no retry.

    Context keys:
        raw (str | None): the offending value, truncated
    """


class StorageError(CaseTrackerError):
    """Database operation failed.

    Policy: roll back, skip the item. Data integrity is critical.

    Context keys:
        operation (str): "record_observation", "query", "migrate", etc.
        table (str): the table involved
    """
