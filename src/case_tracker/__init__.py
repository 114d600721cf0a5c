"""case-tracker: rate-limited market price sweeper for item cases."""

__version__ = "0.1.0"
