"""Simulation quote connector."""

from __future__ import annotations

import logging
import random
from decimal import ROUND_HALF_UP, Decimal

from depthbook.book.models import OrderBook, PriceLevel, utc_now
from depthbook.config_loader import SimConfig
from depthbook.exchange.base import QuoteConnector

logger = logging.getLogger(__name__)


class SimQuoteConnector(QuoteConnector):
    """
    Generates synthetic order books for offline runs and dry runs.
    The mid price follows a random walk; each fetch lays out depth levels
    per side at level_spacing intervals with random quantities.
    """

    name = "sim"

    def __init__(self, config: SimConfig | None = None):
        self.config = config or SimConfig()
        self._rng = random.Random(self.config.seed)
        self.mid_price = self.config.start_price
        self.fetch_count = 0

    async def connect(self) -> None:
        logger.info(f"SimQuoteConnector started at mid {self.mid_price}")

    async def close(self) -> None:
        logger.info("SimQuoteConnector stopped")

    def _step(self) -> None:
        steps = self._rng.choice([-2, -1, 0, 1, 2])
        self.mid_price = max(
            self.mid_price + self.config.level_spacing * steps,
            self.config.level_spacing * 10,
        )

    def _quantity(self) -> Decimal:
        raw = Decimal(str(self._rng.uniform(0.001, float(self.config.max_level_quantity))))
        return raw.quantize(Decimal("0.00000001"), rounding=ROUND_HALF_UP)

    def _price(self, value: Decimal) -> Decimal:
        ticks = (value / self.config.tick_size).to_integral_value(rounding=ROUND_HALF_UP)
        return ticks * self.config.tick_size

    async def fetch_quotes(self, symbol: str, depth: int) -> OrderBook:
        self._step()
        self.fetch_count += 1

        half_spread = self.config.level_spacing / 2
        spacing = self.config.level_spacing

        bids = []
        asks = []
        for i in range(depth):
            bid_price = self._price(self.mid_price - half_spread - spacing * i)
            if bid_price > 0:
                bids.append(PriceLevel(bid_price, self._quantity()))
            asks.append(PriceLevel(self._price(self.mid_price + half_spread + spacing * i), self._quantity()))

        return OrderBook(bids=tuple(bids), asks=tuple(asks), timestamp=utc_now())

    def info(self) -> dict[str, str]:
        return {"id": "sim", "name": "Synthetic random walk", "mid": str(self.mid_price)}
