"""Market order simulation."""

from depthbook.execution.service import MarketOrderService
from depthbook.execution.simulator import (
    simulate_market_buy,
    simulate_market_order,
    simulate_market_sell,
)

__all__ = [
    "MarketOrderService",
    "simulate_market_buy",
    "simulate_market_order",
    "simulate_market_sell",
]
