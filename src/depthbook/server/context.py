"""Wiring of the running service components."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from depthbook.book.store import OrderBookStore
from depthbook.config_loader import AppConfig
from depthbook.distribution.channel import InProcessChannel
from depthbook.exchange.base import QuoteConnector
from depthbook.exchange.ccxt_connector import CcxtQuoteConnector
from depthbook.exchange.sim import SimQuoteConnector
from depthbook.execution.service import MarketOrderService
from depthbook.history.ledger import OrderHistoryLedger
from depthbook.scheduler.ticker import Ticker
from depthbook.scheduler.updater import UpdateScheduler
from depthbook.server.ratelimit import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)


def build_connector(config: AppConfig) -> QuoteConnector:
    """Quote source selected by environment.connector."""
    if config.is_sim_mode:
        logger.info("Using SimQuoteConnector (synthetic order books)")
        return SimQuoteConnector(config.sim)

    logger.info(f"Using CcxtQuoteConnector ({config.exchange.name} {config.exchange.symbol})")
    return CcxtQuoteConnector(config.exchange)


@dataclass
class ServiceContext:
    """Every long-lived component, shared by the HTTP and WebSocket handlers."""

    config: AppConfig
    connector: QuoteConnector
    store: OrderBookStore
    channel: InProcessChannel
    scheduler: UpdateScheduler
    ledger: OrderHistoryLedger
    service: MarketOrderService
    limiter: SlidingWindowRateLimiter
    started_at: float = field(default_factory=time.monotonic)

    @classmethod
    def build(
        cls,
        config: AppConfig,
        connector: QuoteConnector | None = None,
        ticker: Ticker | None = None,
    ) -> ServiceContext:
        """connector -> store -> channel -> scheduler, plus ledger -> service."""
        connector = connector or build_connector(config)
        store = OrderBookStore(config.store)
        channel = InProcessChannel(store, config.distribution)
        scheduler = UpdateScheduler(
            connector,
            store,
            channel,
            exchange_config=config.exchange,
            updater_config=config.updater,
            distribution_config=config.distribution,
            ticker=ticker,
        )
        ledger = OrderHistoryLedger(config.history)
        service = MarketOrderService(store, config.market_order, ledger)
        limiter = SlidingWindowRateLimiter(config.rate_limit)

        return cls(
            config=config,
            connector=connector,
            store=store,
            channel=channel,
            scheduler=scheduler,
            ledger=ledger,
            service=service,
            limiter=limiter,
        )

    @property
    def uptime(self) -> float:
        return time.monotonic() - self.started_at

    async def start(self) -> None:
        await self.connector.connect()
        await self.scheduler.start()

    async def stop(self) -> None:
        """Tear down in reverse order of start."""
        await self.scheduler.stop()
        self.channel.close()
        await self.connector.close()
