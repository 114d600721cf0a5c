"""case_tracker.core: foundation types, config, and exceptions."""

from case_tracker.core.config import (
    APIConfig,
    MarketConfig,
    StorageConfig,
    SweepConfig,
    TrackerConfig,
    load_config,
)
from case_tracker.core.exceptions import (
    CaseTrackerError,
    CatalogError,
    ConfigError,
    FetchError,
    PriceParseError,
    RateLimitError,
    StorageError,
)
from case_tracker.core.models import (
    FetchAttempt,
    ItemId,
    ItemUpdatedEvent,
    LiveEvent,
    PriceObservation,
    SweepCompleteEvent,
    SweepReport,
    SweepState,
    ensure_utc,
    utc_now,
)

__all__ = [
    # Type aliases
    "ItemId",
    "LiveEvent",
    # Models
    "PriceObservation",
    "FetchAttempt",
    "SweepState",
    "SweepReport",
    "ItemUpdatedEvent",
    "SweepCompleteEvent",
    "ensure_utc",
    "utc_now",
    # Config
    "TrackerConfig",
    "MarketConfig",
    "SweepConfig",
    "StorageConfig",
    "APIConfig",
    "load_config",
    # Exceptions
    "CaseTrackerError",
    "ConfigError",
    "CatalogError",
    "FetchError",
    "RateLimitError",
    "PriceParseError",
    "StorageError",
]
