"""Sorted one-sided price level collections and book validation."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from typing import Any

from depthbook.book.models import OrderBook, PriceLevel, to_decimal
from depthbook.constants import BookSide
from depthbook.errors import BookValidationError

logger = logging.getLogger(__name__)


def _in_order(side: BookSide, prev: PriceLevel, curr: PriceLevel) -> bool:
    if side == BookSide.BID:
        return curr.price < prev.price
    return curr.price > prev.price


class PriceLevelSet:
    """
    Immutable, strictly ordered levels for one side of the book.

    Bids are strictly descending by price, asks strictly ascending, so index 0
    is always the best level. Construction fails with BookValidationError if
    the input breaks the ordering or carries a non-positive price/quantity.
    """

    __slots__ = ("_side", "_levels")

    def __init__(self, side: BookSide, levels: Iterable[PriceLevel] = ()):
        self._side = side
        self._levels = tuple(levels)
        self._check()

    def _check(self) -> None:
        invariant = "bids_descending" if self._side == BookSide.BID else "asks_ascending"
        for i, level in enumerate(self._levels):
            if level.price <= 0 or level.quantity <= 0:
                raise BookValidationError(
                    "positive_levels",
                    f"{self._side.value} level #{i} has price={level.price} quantity={level.quantity}",
                    (level.price,),
                )
            if i and not _in_order(self._side, self._levels[i - 1], level):
                prev = self._levels[i - 1]
                raise BookValidationError(
                    invariant,
                    f"{self._side.value} level #{i} price {level.price} follows {prev.price}",
                    (prev.price, level.price),
                )

    @property
    def side(self) -> BookSide:
        return self._side

    @property
    def best(self) -> PriceLevel | None:
        return self._levels[0] if self._levels else None

    def top(self, n: int) -> tuple[PriceLevel, ...]:
        return self._levels[: max(n, 0)]

    def all(self) -> tuple[PriceLevel, ...]:
        return self._levels

    def __len__(self) -> int:
        return len(self._levels)

    def __iter__(self) -> Iterator[PriceLevel]:
        return iter(self._levels)

    def __bool__(self) -> bool:
        return bool(self._levels)

    def __repr__(self) -> str:
        return f"PriceLevelSet({self._side.value}, {len(self._levels)} levels, best={self.best})"


def normalize_levels(
    side: BookSide, raw: Iterable[Any], depth: int | None = None
) -> tuple[PriceLevel, ...]:
    """
    Normalize upstream levels for one side.

    Accepts PriceLevel instances or [price, quantity] pairs, drops exhausted
    (non-positive quantity) levels, sorts best-first and truncates to depth.
    Duplicate prices are kept so validation can reject them.
    """
    levels = []
    for item in raw:
        if isinstance(item, PriceLevel):
            level = item
        else:
            price, quantity = list(item)[:2]
            level = PriceLevel(price=to_decimal(price), quantity=to_decimal(quantity))
        if level.quantity > 0:
            levels.append(level)

    levels.sort(key=lambda lvl: lvl.price, reverse=(side == BookSide.BID))

    if depth is not None:
        levels = levels[:depth]
    return tuple(levels)


def normalize_book(book: OrderBook, depth: int | None = None) -> OrderBook:
    """Sort both sides of a candidate book best-first."""
    return OrderBook(
        bids=normalize_levels(BookSide.BID, book.bids, depth),
        asks=normalize_levels(BookSide.ASK, book.asks, depth),
        timestamp=book.timestamp,
    )


def validate_order_book(book: OrderBook) -> tuple[PriceLevelSet, PriceLevelSet]:
    """
    Validate book integrity.

    Checks:
    - Bids are strictly descending
    - Asks are strictly ascending
    - No crossing (best bid < best ask) when both sides are present

    Returns:
        The (bids, asks) level sets.

    Raises:
        BookValidationError: naming the violated invariant and prices.
    """
    bids = PriceLevelSet(BookSide.BID, book.bids)
    asks = PriceLevelSet(BookSide.ASK, book.asks)

    if bids and asks and bids.best.price >= asks.best.price:
        raise BookValidationError(
            "not_crossed",
            f"best bid {bids.best.price} >= best ask {asks.best.price}",
            (bids.best.price, asks.best.price),
        )
    return bids, asks


def format_order_book(book: OrderBook, levels: int = 5) -> str:
    """Human readable top of book for logs and the CLI."""

    def fmt(level: PriceLevel) -> str:
        return f" {level.price:.2f} | {level.quantity:.8f}"

    asks = "\n".join(fmt(level) for level in book.asks[:levels])
    bids = "\n".join(fmt(level) for level in book.bids[:levels])
    return (
        f"Order Book ({book.timestamp.isoformat()})\n"
        f"Asks ({len(book.asks)} levels):\n{asks}\n"
        f"---\n"
        f"Bids ({len(book.bids)} levels):\n{bids}"
    )
