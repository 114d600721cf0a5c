"""Market price ingestion: catalog and rate-limited client."""

from case_tracker.ingestion.catalog import load_catalog, validate_catalog
from case_tracker.ingestion.client import MarketClient, parse_lowest_price

__all__ = [
    "MarketClient",
    "load_catalog",
    "parse_lowest_price",
    "validate_catalog",
]
