"""Market order execution simulator.

Walks one side of a book snapshot the way a market order would take
liquidity:

- Market buy takes the ask side, best (lowest) price first
- Market sell takes the bid side, best (highest) price first
- Each level fills min(remaining, level quantity) until the order is done
  or the side is exhausted

The walk is done at full Decimal precision; rounding happens once, on the
returned values.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any

from depthbook.book.models import ExecutionResult, FillDetail, OrderBook, to_decimal
from depthbook.config_loader import MarketOrderConfig
from depthbook.constants import BookSide, ExecutionStatus, OrderSide

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def _quantize(value: Decimal, places: int) -> Decimal:
    with localcontext() as ctx:
        # quantize fails when the result needs more digits than the context allows
        ctx.prec = max(ctx.prec, value.adjusted() + places + 2)
        return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def simulate_market_order(
    book: OrderBook,
    side: OrderSide,
    amount: Any,
    config: MarketOrderConfig | None = None,
) -> ExecutionResult:
    """
    Simulate a market order against a book snapshot.

    Pure function: the book is not modified and the same inputs always give
    the same result.

    Args:
        book: Book snapshot (usually a full read from the store).
        side: BUY walks asks, SELL walks bids.
        amount: Requested base quantity.
        config: Output precision; defaults to MarketOrderConfig().

    Returns:
        ExecutionResult with fills, weighted average price and slippage.
        Slippage is (avg - best) / best * 100: >= 0 for buys, <= 0 for sells.
    """
    cfg = config or MarketOrderConfig()
    side = OrderSide(side)
    requested = to_decimal(amount)

    levels = book.asks if side.consumes is BookSide.ASK else book.bids

    if requested <= 0 or not levels:
        return ExecutionResult.rejected(side, _quantize(max(requested, _ZERO), cfg.quantity_precision))

    best_price = levels[0].price
    remaining = requested
    total_cost = _ZERO
    total_filled = _ZERO
    walked: list[tuple[Decimal, Decimal]] = []

    for level in levels:
        if remaining <= 0:
            break

        fill_qty = min(remaining, level.quantity)
        total_cost += fill_qty * level.price
        total_filled += fill_qty
        remaining -= fill_qty
        walked.append((level.price, fill_qty))

    avg_price = total_cost / total_filled if total_filled > 0 else _ZERO
    slippage = (avg_price - best_price) / best_price * _HUNDRED if total_filled > 0 else _ZERO

    filled_q = _quantize(total_filled, cfg.quantity_precision)
    requested_q = _quantize(requested, cfg.quantity_precision)

    if filled_q <= 0:
        status = ExecutionStatus.REJECTED
    elif filled_q >= requested_q:
        status = ExecutionStatus.FILLED
    else:
        status = ExecutionStatus.PARTIAL

    if status == ExecutionStatus.REJECTED:
        return ExecutionResult.rejected(side, requested_q)

    fills = tuple(
        FillDetail(
            price=_quantize(price, cfg.price_precision),
            quantity=_quantize(qty, cfg.quantity_precision),
        )
        for price, qty in walked
    )

    return ExecutionResult(
        side=side,
        requested=requested_q,
        filled=min(filled_q, requested_q),
        avg_price=_quantize(avg_price, cfg.price_precision),
        slippage_pct=_quantize(slippage, cfg.slippage_precision),
        status=status,
        fills=fills,
    )


def simulate_market_buy(
    book: OrderBook, amount: Any, config: MarketOrderConfig | None = None
) -> ExecutionResult:
    return simulate_market_order(book, OrderSide.BUY, amount, config)


def simulate_market_sell(
    book: OrderBook, amount: Any, config: MarketOrderConfig | None = None
) -> ExecutionResult:
    return simulate_market_order(book, OrderSide.SELL, amount, config)
