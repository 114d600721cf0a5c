"""Price persistence.

Two views of the same observations are kept side by side:

- ``current_prices``: exactly one row per item, overwritten on every
  successful fetch (the "present state").
- ``price_history``: one row per successful fetch, append-only and never
  pruned; readers narrow it with a time window instead.

``SqlitePriceStore.record_observation`` writes both inside one transaction
and hands back the price it replaced so callers can compute a change.
"""

from case_tracker.prices.store import (
    PriceStore,
    SqlitePriceStore,
    create_store,
    percent_change,
)

__all__ = [
    "PriceStore",
    "SqlitePriceStore",
    "create_store",
    "percent_change",
]
