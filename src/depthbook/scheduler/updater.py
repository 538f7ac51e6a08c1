"""Periodic order book refresh."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime
from typing import Any

from depthbook.book.levels import normalize_book
from depthbook.book.models import utc_now
from depthbook.book.store import OrderBookStore
from depthbook.config_loader import DistributionConfig, ExchangeConfig, UpdaterConfig
from depthbook.constants import SchedulerState
from depthbook.distribution.channel import DistributionChannel
from depthbook.errors import BookValidationError, FetchError
from depthbook.exchange.base import QuoteConnector
from depthbook.scheduler.ticker import IntervalTicker, Ticker

logger = logging.getLogger(__name__)


class UpdateScheduler:
    """
    Drives fetch -> normalize -> replace -> publish on every tick.

    A failed cycle is logged and leaves the store and subscribers untouched;
    the next tick runs as usual. Cycles never overlap. A fetch that completes
    after stop() is discarded.
    """

    def __init__(
        self,
        connector: QuoteConnector,
        store: OrderBookStore,
        channel: DistributionChannel,
        exchange_config: ExchangeConfig | None = None,
        updater_config: UpdaterConfig | None = None,
        distribution_config: DistributionConfig | None = None,
        ticker: Ticker | None = None,
    ):
        self.connector = connector
        self.store = store
        self.channel = channel
        self.exchange_config = exchange_config or ExchangeConfig()
        self.updater_config = updater_config or UpdaterConfig()
        self.distribution_config = distribution_config or DistributionConfig()
        self.ticker = ticker or IntervalTicker(self.updater_config.interval_seconds)

        self.state = SchedulerState.IDLE
        self._task: asyncio.Task | None = None
        self._cycle_lock = asyncio.Lock()
        self._epoch = 0

        # Stats
        self.cycles = 0
        self.failures = 0
        self.last_success: datetime | None = None
        self.last_error: str | None = None

    @property
    def is_running(self) -> bool:
        return self.state == SchedulerState.RUNNING

    async def start(self) -> None:
        """Run one cycle immediately, then refresh on every tick until stopped."""
        if self.is_running:
            logger.warning("Order book updater is already running")
            return

        self.state = SchedulerState.RUNNING
        logger.info(
            f"Starting order book updater for {self.exchange_config.symbol} "
            f"(interval: {self.updater_config.interval_ms}ms)"
        )

        await self.run_cycle()

        # stop() may have been called during the first cycle
        if not self.is_running:
            return

        self.ticker.reset()
        self._task = asyncio.create_task(self._loop(), name="order-book-updater")

    async def stop(self) -> None:
        """Stop refreshing. Safe to call in any state."""
        self._epoch += 1
        task, self._task = self._task, None

        if not self.is_running and task is None:
            return

        self.state = SchedulerState.IDLE
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        logger.info("Order book updater stopped")

    async def _loop(self) -> None:
        while self.is_running:
            await self.ticker.wait()
            if not self.is_running:
                break
            await self.run_cycle()

    async def trigger_update(self) -> bool:
        """Run a cycle outside the schedule."""
        logger.info("Manual update triggered")
        return await self.run_cycle()

    async def run_cycle(self) -> bool:
        """
        Fetch, validate, commit and broadcast one book.

        Returns:
            True if a new book was committed and published.
        """
        async with self._cycle_lock:
            epoch = self._epoch
            self.cycles += 1
            symbol = self.exchange_config.symbol
            depth = self.exchange_config.depth_levels

            try:
                candidate = await self.connector.fetch_quotes(symbol, depth)

                if epoch != self._epoch:
                    logger.info("Discarding order book fetched after updater stopped")
                    return False

                book = normalize_book(candidate, depth)
                self.store.replace(book)
                reached = self.channel.publish(book.top(self.distribution_config.top_levels))
            except BookValidationError as e:
                self._record_failure(f"Invalid order book: {e}")
                return False
            except FetchError as e:
                self._record_failure(f"Fetch failed after {e.attempts} attempts: {e.__cause__ or e}")
                return False
            except Exception as e:
                logger.error(f"Unexpected error in update cycle: {e}", exc_info=True)
                self._record_failure(str(e), log=False)
                return False

            self.last_success = utc_now()
            self.last_error = None
            logger.debug(
                f"Order book updated: {len(book.bids)} bids, {len(book.asks)} asks, "
                f"broadcast to {reached} subscribers"
            )
            return True

    def _record_failure(self, message: str, log: bool = True) -> None:
        self.failures += 1
        self.last_error = message
        if log:
            logger.error(f"Order book update failed: {message}")

    def status(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "running": self.is_running,
            "intervalMs": self.updater_config.interval_ms,
            "symbol": self.exchange_config.symbol,
            "cycles": self.cycles,
            "failures": self.failures,
            "lastSuccess": self.last_success.isoformat() if self.last_success else None,
            "lastError": self.last_error,
        }
