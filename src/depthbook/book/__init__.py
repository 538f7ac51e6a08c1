"""Order Book Module.

Immutable book values, sorted price level sets and the live book store.
"""

from depthbook.book.levels import (
    PriceLevelSet,
    format_order_book,
    normalize_book,
    normalize_levels,
    validate_order_book,
)
from depthbook.book.models import (
    ChannelMessage,
    DeltaMessage,
    ExecutionResult,
    FillDetail,
    OrderBook,
    PriceLevel,
)
from depthbook.book.store import OrderBookStore

__all__ = [
    "ChannelMessage",
    "DeltaMessage",
    "ExecutionResult",
    "FillDetail",
    "OrderBook",
    "OrderBookStore",
    "PriceLevel",
    "PriceLevelSet",
    "format_order_book",
    "normalize_book",
    "normalize_levels",
    "validate_order_book",
]
