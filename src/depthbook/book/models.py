"""Order book data structures."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from depthbook.constants import ExecutionStatus, MessageType, OrderSide


def to_decimal(value: Any) -> Decimal:
    """Convert a numeric value (float, int, str) to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def timestamp_from_ms(ms: int | float | None) -> datetime:
    """Epoch milliseconds -> aware UTC datetime (now if missing)."""
    if not ms:
        return utc_now()
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def timestamp_to_ms(ts: datetime) -> int:
    return int(ts.timestamp() * 1000)


@dataclass(frozen=True)
class PriceLevel:
    """Single (price, quantity) level on one side of the book."""

    price: Decimal
    quantity: Decimal

    @classmethod
    def of(cls, price: Any, quantity: Any) -> PriceLevel:
        return cls(price=to_decimal(price), quantity=to_decimal(quantity))

    def as_pair(self) -> list[float]:
        return [float(self.price), float(self.quantity)]


def levels_from_pairs(pairs: Iterable[Iterable[Any]]) -> tuple[PriceLevel, ...]:
    """Build levels from [price, quantity, ...] pairs (extra fields are ignored)."""
    levels = []
    for pair in pairs:
        price, quantity = list(pair)[:2]
        levels.append(PriceLevel.of(price, quantity))
    return tuple(levels)


@dataclass(frozen=True)
class OrderBook:
    """
    Immutable order book value.

    A committed book has bids strictly descending, asks strictly ascending and
    best bid < best ask. Candidate books coming from a connector may not; the
    store validates before committing.
    """

    bids: tuple[PriceLevel, ...] = ()
    asks: tuple[PriceLevel, ...] = ()
    timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def empty(cls, timestamp: datetime | None = None) -> OrderBook:
        return cls(bids=(), asks=(), timestamp=timestamp or utc_now())

    @classmethod
    def from_pairs(
        cls,
        bids: Iterable[Iterable[Any]],
        asks: Iterable[Iterable[Any]],
        timestamp: datetime | int | float | None = None,
    ) -> OrderBook:
        """Build a book from raw [price, quantity] pairs."""
        if not isinstance(timestamp, datetime):
            timestamp = timestamp_from_ms(timestamp)
        return cls(bids=levels_from_pairs(bids), asks=levels_from_pairs(asks), timestamp=timestamp)

    @property
    def is_empty(self) -> bool:
        return not self.bids and not self.asks

    @property
    def best_bid(self) -> PriceLevel | None:
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> PriceLevel | None:
        return self.asks[0] if self.asks else None

    @property
    def spread(self) -> Decimal | None:
        if not self.bids or not self.asks:
            return None
        return self.asks[0].price - self.bids[0].price

    def top(self, n: int) -> OrderBook:
        """First n levels of each side with the same timestamp."""
        n = max(n, 0)
        return OrderBook(bids=self.bids[:n], asks=self.asks[:n], timestamp=self.timestamp)

    def to_dict(self) -> dict[str, Any]:
        return {
            "bids": [level.as_pair() for level in self.bids],
            "asks": [level.as_pair() for level in self.asks],
            "timestamp": timestamp_to_ms(self.timestamp),
        }


# Top-N re-publish of the current book. Consumers replace their state on
# receipt; it is not an incremental patch.
DeltaMessage = OrderBook


@dataclass(frozen=True)
class FillDetail:
    """One consumed level fragment during an execution walk."""

    price: Decimal
    quantity: Decimal

    def to_dict(self) -> dict[str, float]:
        return {"price": float(self.price), "quantity": float(self.quantity)}


@dataclass(frozen=True)
class ExecutionResult:
    """Result of a simulated market order."""

    side: OrderSide
    requested: Decimal
    filled: Decimal
    avg_price: Decimal
    slippage_pct: Decimal
    status: ExecutionStatus
    fills: tuple[FillDetail, ...] = ()

    @classmethod
    def rejected(cls, side: OrderSide, requested: Decimal) -> ExecutionResult:
        return cls(
            side=side,
            requested=requested,
            filled=Decimal("0"),
            avg_price=Decimal("0"),
            slippage_pct=Decimal("0"),
            status=ExecutionStatus.REJECTED,
        )

    @property
    def total_value(self) -> Decimal:
        """Total cost (buy) or revenue (sell) at the average price."""
        return self.filled * self.avg_price

    def to_dict(self) -> dict[str, Any]:
        return {
            "requested": float(self.requested),
            "filled": float(self.filled),
            "avg_price": float(self.avg_price),
            "slippage_pct": float(self.slippage_pct),
            "status": self.status.value,
            "fills": [fill.to_dict() for fill in self.fills],
        }


@dataclass(frozen=True)
class ChannelMessage:
    """Message delivered to a live-update subscriber."""

    type: MessageType
    book: OrderBook | None = None
    message: str = ""

    @classmethod
    def snapshot(cls, book: OrderBook) -> ChannelMessage:
        return cls(type=MessageType.SNAPSHOT, book=book)

    @classmethod
    def delta(cls, book: DeltaMessage) -> ChannelMessage:
        return cls(type=MessageType.DELTA, book=book)

    @classmethod
    def error(cls, message: str) -> ChannelMessage:
        return cls(type=MessageType.ERROR, message=message)

    def to_dict(self) -> dict[str, Any]:
        if self.type == MessageType.ERROR or self.book is None:
            return {"type": self.type.value, "data": {"message": self.message}}
        return {"type": self.type.value, "data": self.book.to_dict()}
