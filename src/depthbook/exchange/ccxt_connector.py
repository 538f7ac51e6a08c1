"""Quote connector wrapping ccxt's async exchange clients."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import ccxt.async_support as ccxt_async

from depthbook.book.models import OrderBook
from depthbook.config_loader import ExchangeConfig
from depthbook.exchange.base import QuoteConnector
from depthbook.exchange.retry import retry_with_backoff

logger = logging.getLogger(__name__)


class CcxtQuoteConnector(QuoteConnector):
    """
    Fetches order books from a ccxt-supported exchange (Binance by default).

    Transient failures are retried with exponential backoff; after
    max_retry_attempts the fetch fails with FetchError.
    """

    def __init__(
        self,
        config: ExchangeConfig,
        exchange: Any | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.name = config.name
        self._exchange = exchange
        self._sleep = sleep

    def _create_exchange(self) -> Any:
        exchange_class = getattr(ccxt_async, self.config.name, None)
        if exchange_class is None:
            raise ValueError(f"Unknown ccxt exchange: {self.config.name}")

        options: dict[str, Any] = {
            "enableRateLimit": self.config.enable_rate_limit,
            "timeout": self.config.timeout_ms,
        }
        if self.config.has_credentials:
            options["apiKey"] = self.config.api_key
            options["secret"] = self.config.api_secret
            logger.info("ccxt initialized with API credentials")
        else:
            logger.info("ccxt initialized without API credentials (public data only)")

        exchange = exchange_class(options)
        logger.info(f"ccxt {self.config.name} exchange initialized")
        return exchange

    @property
    def exchange(self) -> Any:
        if self._exchange is None:
            self._exchange = self._create_exchange()
        return self._exchange

    async def connect(self) -> None:
        # Instantiation is lazy; markets load on first fetch
        _ = self.exchange

    async def close(self) -> None:
        if self._exchange is not None and hasattr(self._exchange, "close"):
            await self._exchange.close()
            logger.info(f"ccxt {self.config.name} session closed")

    async def fetch_quotes(self, symbol: str, depth: int) -> OrderBook:
        async def _fetch() -> OrderBook:
            raw = await self.exchange.fetch_order_book(symbol, depth)
            return self._transform(raw)

        book = await retry_with_backoff(
            _fetch,
            max_attempts=self.config.max_retry_attempts,
            initial_delay=self.config.retry_delay_ms / 1000,
            multiplier=self.config.retry_backoff_multiplier,
            sleep=self._sleep,
            description=f"Fetch {symbol} order book from {self.config.name}",
        )
        logger.debug(f"Fetched order book: {len(book.bids)} bids, {len(book.asks)} asks")
        return book

    @staticmethod
    def _transform(raw: dict[str, Any]) -> OrderBook:
        """ccxt {bids, asks, timestamp} -> candidate OrderBook (unsorted as received)."""
        if not isinstance(raw, dict) or "bids" not in raw or "asks" not in raw:
            raise ValueError(f"Malformed order book response: {raw!r}")
        return OrderBook.from_pairs(raw["bids"], raw["asks"], raw.get("timestamp"))

    def info(self) -> dict[str, str]:
        exchange = self._exchange
        return {
            "id": getattr(exchange, "id", self.config.name) if exchange else self.config.name,
            "name": getattr(exchange, "name", self.config.name) if exchange else self.config.name,
            "symbol": self.config.symbol,
        }
