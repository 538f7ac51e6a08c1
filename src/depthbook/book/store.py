"""In-memory order book store."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from depthbook.book.levels import PriceLevelSet, validate_order_book
from depthbook.book.models import OrderBook
from depthbook.config_loader import StoreConfig
from depthbook.errors import BookValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _CommittedBook:
    bids: PriceLevelSet
    asks: PriceLevelSet
    timestamp: datetime
    committed_at: float  # store clock reading
    version: int


class OrderBookStore:
    """
    Owns the single live order book.

    replace() swaps in a new immutable value by reference; readers always see
    either the previous or the new book in full, never a mix. A book older
    than max_age_seconds reads as empty (0 disables expiry).
    """

    def __init__(
        self,
        config: StoreConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or StoreConfig()
        self._clock = clock
        self._current: _CommittedBook | None = None
        self._version = 0

    def replace(self, book: OrderBook) -> None:
        """
        Atomically replace the live book.

        Raises:
            BookValidationError: the candidate violates an invariant. The
                previous book stays live.
        """
        try:
            bids, asks = validate_order_book(book)
        except BookValidationError as e:
            logger.error(
                f"Rejected order book ({len(book.bids)} bids, {len(book.asks)} asks): "
                f"{e.invariant} violated - {e.detail}"
            )
            raise

        self._version += 1
        self._current = _CommittedBook(
            bids=bids,
            asks=asks,
            timestamp=book.timestamp,
            committed_at=self._clock(),
            version=self._version,
        )

        best_bid = bids.best.price if bids else None
        best_ask = asks.best.price if asks else None
        logger.debug(
            f"Stored order book v{self._version}: {len(bids)} bids, {len(asks)} asks "
            f"(best bid={best_bid}, best ask={best_ask})"
        )

    def _live(self) -> _CommittedBook | None:
        current = self._current
        if current is None:
            return None
        max_age = self.config.max_age_seconds
        if max_age and self._clock() - current.committed_at > max_age:
            return None
        return current

    def read_top(self, n: int) -> OrderBook:
        """First n levels per side of the current book."""
        current = self._live()
        if current is None:
            return OrderBook.empty()
        return OrderBook(bids=current.bids.top(n), asks=current.asks.top(n), timestamp=current.timestamp)

    def read_full(self) -> OrderBook:
        """All levels of the current book (used for execution walks)."""
        current = self._live()
        if current is None:
            return OrderBook.empty()
        return OrderBook(bids=current.bids.all(), asks=current.asks.all(), timestamp=current.timestamp)

    @property
    def has_data(self) -> bool:
        current = self._live()
        return current is not None and bool(current.bids or current.asks)

    @property
    def version(self) -> int:
        """Number of successful replaces."""
        return self._version

    @property
    def timestamp(self) -> datetime | None:
        current = self._live()
        return current.timestamp if current else None

    def age_seconds(self) -> float | None:
        """Seconds since the last commit, or None if nothing was committed."""
        if self._current is None:
            return None
        return self._clock() - self._current.committed_at
