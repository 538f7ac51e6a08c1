"""Order history ledger.

Append-only record of simulated executions, queryable by client address and
calendar date. Records are kept in memory and pruned after the retention
window.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from depthbook.book.models import ExecutionResult, timestamp_to_ms
from depthbook.config_loader import HistoryConfig
from depthbook.constants import OrderSide

logger = logging.getLogger(__name__)


def generate_order_id(now: datetime) -> str:
    """Generate unique order ID."""
    return f"order:{timestamp_to_ms(now)}:{uuid4().hex[:9]}"


@dataclass(frozen=True)
class OrderRecord:
    """One simulated execution as stored in the ledger."""

    id: str
    ip: str
    side: OrderSide
    amount: Decimal
    filled: Decimal
    avg_price: Decimal
    slippage_pct: Decimal
    status: str
    total_cost_or_revenue: Decimal
    timestamp: datetime
    date: str  # YYYY-MM-DD
    time: str  # HH:MM:SS

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("amount", "filled", "avg_price", "slippage_pct", "total_cost_or_revenue"):
            data[key] = float(data[key])
        data["side"] = self.side.value
        data["timestamp"] = timestamp_to_ms(self.timestamp)
        return data


def _group_summary(key_name: str, key: str, records: list[OrderRecord]) -> dict[str, Any]:
    return {
        key_name: key,
        "order_count": len(records),
        "total_traded": float(sum((r.filled for r in records), Decimal("0"))),
        "total_cost_or_revenue": float(
            sum((r.total_cost_or_revenue for r in records), Decimal("0"))
        ),
        "orders": [r.to_dict() for r in records],
    }


class OrderHistoryLedger:
    """
    In-memory order history.

    Keeps at most max_records entries (oldest evicted first) and drops entries
    older than retention_days on every write and query.
    """

    def __init__(self, config: HistoryConfig | None = None):
        self.config = config or HistoryConfig()
        self._records: deque[OrderRecord] = deque(maxlen=self.config.max_records)

    def record(
        self,
        ip: str,
        side: OrderSide,
        amount: Decimal,
        result: ExecutionResult,
        now: datetime | None = None,
    ) -> OrderRecord:
        """Append an execution result for a client."""
        now = now or datetime.now(timezone.utc)
        entry = OrderRecord(
            id=generate_order_id(now),
            ip=ip,
            side=OrderSide(side),
            amount=Decimal(str(amount)),
            filled=result.filled,
            avg_price=result.avg_price,
            slippage_pct=result.slippage_pct,
            status=result.status.value,
            total_cost_or_revenue=result.total_value,
            timestamp=now,
            date=now.strftime("%Y-%m-%d"),
            time=now.strftime("%H:%M:%S"),
        )
        self._prune(now)
        self._records.append(entry)
        logger.debug(f"Order history stored for IP {ip}: {entry.id}")
        return entry

    def _prune(self, now: datetime | None = None) -> None:
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=self.config.retention_days)
        while self._records and self._records[0].timestamp < cutoff:
            self._records.popleft()

    def all(self) -> list[OrderRecord]:
        self._prune()
        return list(self._records)

    def by_ip(self, ip: str, on_date: date | str | None = None) -> list[OrderRecord]:
        records = [r for r in self.all() if r.ip == ip]
        if on_date is not None:
            day = on_date.isoformat() if isinstance(on_date, date) else on_date
            records = [r for r in records if r.date == day]
        return records

    def by_date(self, on_date: date | str) -> list[OrderRecord]:
        day = on_date.isoformat() if isinstance(on_date, date) else on_date
        return [r for r in self.all() if r.date == day]

    def summary(self) -> dict[str, Any]:
        """Totals with orders grouped by IP and by date (newest dates first)."""
        records = self.all()

        by_ip: dict[str, list[OrderRecord]] = {}
        by_date: dict[str, list[OrderRecord]] = {}
        for r in records:
            by_ip.setdefault(r.ip, []).append(r)
            by_date.setdefault(r.date, []).append(r)

        return {
            "total_orders": len(records),
            "total_traded": float(sum((r.filled for r in records), Decimal("0"))),
            "total_cost_or_revenue": float(
                sum((r.total_cost_or_revenue for r in records), Decimal("0"))
            ),
            "grouped_by_ip": [_group_summary("ip", ip, rs) for ip, rs in by_ip.items()],
            "grouped_by_date": [
                _group_summary("date", d, by_date[d]) for d in sorted(by_date, reverse=True)
            ],
        }

    def clear(self) -> None:
        self._records.clear()
        logger.info("Order history cleared")

    def __len__(self) -> int:
        return len(self._records)
