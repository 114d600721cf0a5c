"""Read API and live event channel."""

from case_tracker.api.app import create_app

__all__ = ["create_app"]
