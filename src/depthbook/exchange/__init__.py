"""Exchange quote connectors."""

from depthbook.exchange.base import QuoteConnector
from depthbook.exchange.ccxt_connector import CcxtQuoteConnector
from depthbook.exchange.retry import backoff_delay, retry_with_backoff
from depthbook.exchange.sim import SimQuoteConnector

__all__ = [
    "CcxtQuoteConnector",
    "QuoteConnector",
    "SimQuoteConnector",
    "backoff_delay",
    "retry_with_backoff",
]
