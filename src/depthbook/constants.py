"""Core constants for depthbook."""

from decimal import Decimal
from enum import Enum


class ConnectorMode(str, Enum):
    """Quote source selection."""

    CCXT = "ccxt"
    SIM = "sim"


class BookSide(str, Enum):
    """Side of the order book a price level belongs to."""

    BID = "bid"
    ASK = "ask"


class OrderSide(str, Enum):
    """Market order side (buy/sell)."""

    BUY = "buy"
    SELL = "sell"

    @property
    def consumes(self) -> BookSide:
        """Book side a market order of this side takes liquidity from."""
        return BookSide.ASK if self is OrderSide.BUY else BookSide.BID


class ExecutionStatus(str, Enum):
    """Outcome of a simulated market order."""

    FILLED = "filled"
    PARTIAL = "partial"
    REJECTED = "rejected"


class MessageType(str, Enum):
    """Message tags sent to live-update subscribers."""

    SNAPSHOT = "snapshot"
    DELTA = "delta"
    ERROR = "error"


class SchedulerState(str, Enum):
    """Update scheduler lifecycle."""

    IDLE = "idle"
    RUNNING = "running"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


# ============================================
# Default Values
# ============================================

DEFAULT_EXCHANGE = "binance"
DEFAULT_SYMBOL = "BTC/USDT"
DEFAULT_DEPTH_LEVELS = 20
DEFAULT_TOP_LEVELS = 10
DEFAULT_UPDATE_INTERVAL_MS = 2000
DEFAULT_MAX_SUBSCRIBERS = 100

DEFAULT_PRICE_PRECISION = 2
DEFAULT_QUANTITY_PRECISION = 8
DEFAULT_SLIPPAGE_PRECISION = 4

DEFAULT_MIN_ORDER_SIZE = Decimal("0.0001")
DEFAULT_MAX_ORDER_SIZE = Decimal("1000")

# ============================================
# Error Messages
# ============================================

INSUFFICIENT_LIQUIDITY = "Insufficient liquidity to fill order"
INVALID_SIDE = 'Order side must be either "buy" or "sell"'
FETCH_FAILED = "Failed to fetch order book from exchange"
ORDER_BOOK_NOT_AVAILABLE = "Order book data not available"
MAX_CONNECTIONS_EXCEEDED = "Maximum connections exceeded"
RATE_LIMITED = "Too many requests"

# ============================================
# Application Constants
# ============================================

APP_NAME = "depthbook"
APP_VERSION = "1.0.0"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_FORMAT_JSON = '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}'
