"""Order history ledger."""

from depthbook.history.ledger import OrderHistoryLedger, OrderRecord

__all__ = ["OrderHistoryLedger", "OrderRecord"]
