"""Sweep scheduling and live update publishing."""

from case_tracker.sweep.orchestrator import PriceFetcher, SweepOrchestrator
from case_tracker.sweep.publisher import LiveUpdatePublisher, QueueSubscriber, Subscriber

__all__ = [
    "LiveUpdatePublisher",
    "PriceFetcher",
    "QueueSubscriber",
    "Subscriber",
    "SweepOrchestrator",
]
