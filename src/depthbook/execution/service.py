"""Caller-facing market order execution."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from depthbook.book.models import ExecutionResult, to_decimal
from depthbook.book.store import OrderBookStore
from depthbook.config_loader import MarketOrderConfig
from depthbook.constants import ExecutionStatus, OrderSide
from depthbook.errors import InsufficientLiquidityError, StoreUnavailableError
from depthbook.execution.simulator import simulate_market_order
from depthbook.history.ledger import OrderHistoryLedger

logger = logging.getLogger(__name__)


class MarketOrderService:
    """
    Simulates market orders against the live store.

    This is a SIMULATION only: no order is placed upstream and the stored
    book is never modified.
    """

    def __init__(
        self,
        store: OrderBookStore,
        config: MarketOrderConfig | None = None,
        ledger: OrderHistoryLedger | None = None,
    ):
        self.store = store
        self.config = config or MarketOrderConfig()
        self.ledger = ledger

    def execute(self, side: OrderSide, amount: Any, client_ip: str = "unknown") -> ExecutionResult:
        """
        Simulate a market order for a client.

        Raises:
            StoreUnavailableError: No book has been committed (or it expired).
            InsufficientLiquidityError: Nothing could be filled.
        """
        side = OrderSide(side)
        amount = to_decimal(amount)

        logger.info(f"New order: {side.value.upper()} {amount} | IP: {client_ip}")

        # Full read: large orders may walk past the published top levels
        book = self.store.read_full()
        if book.is_empty:
            raise StoreUnavailableError()

        result = simulate_market_order(book, side, amount, self.config)
        self._log_result(result)
        self._record(client_ip, side, amount, result)

        if result.status == ExecutionStatus.PARTIAL:
            logger.warning(
                f"Partial fill: only {result.filled} filled out of {result.requested} requested"
            )
        elif result.status == ExecutionStatus.REJECTED:
            raise InsufficientLiquidityError(result)

        return result

    def _log_result(self, result: ExecutionResult) -> None:
        label = "Total Cost" if result.side == OrderSide.BUY else "Total Revenue"
        logger.info(
            f"Order executed: status={result.status.value.upper()} "
            f"requested={result.requested} filled={result.filled} "
            f"avg_price={result.avg_price} slippage={result.slippage_pct}% "
            f"{label}={result.total_value:.2f}"
        )
        for i, fill in enumerate(result.fills, start=1):
            logger.debug(f"  Level {i}: {fill.quantity} @ {fill.price}")

    def _record(self, ip: str, side: OrderSide, amount: Decimal, result: ExecutionResult) -> None:
        if self.ledger is None:
            return
        try:
            self.ledger.record(ip, side, amount, result)
        except Exception as e:
            # History is bookkeeping only; the execution result stands
            logger.warning(f"Failed to store order history: {e}")
