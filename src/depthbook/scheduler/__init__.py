"""Scheduler Module - periodic order book refresh."""

from depthbook.scheduler.ticker import IntervalTicker, ManualTicker, Ticker
from depthbook.scheduler.updater import UpdateScheduler

__all__ = [
    "UpdateScheduler",
    "Ticker",
    "IntervalTicker",
    "ManualTicker",
]
