"""Tests for the order history ledger."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from freezegun import freeze_time

from depthbook.book.models import ExecutionResult, FillDetail
from depthbook.config_loader import HistoryConfig
from depthbook.constants import ExecutionStatus, OrderSide
from depthbook.history.ledger import OrderHistoryLedger, generate_order_id


def make_result(filled="1", avg_price="100", status=ExecutionStatus.FILLED) -> ExecutionResult:
    return ExecutionResult(
        side=OrderSide.BUY,
        requested=Decimal("1"),
        filled=Decimal(filled),
        avg_price=Decimal(avg_price),
        slippage_pct=Decimal("0"),
        status=status,
        fills=(FillDetail(Decimal(avg_price), Decimal(filled)),),
    )


@pytest.fixture
def ledger():
    return OrderHistoryLedger(HistoryConfig(retention_days=30, max_records=100))


def test_generate_order_id():
    now = datetime(2025, 1, 1, tzinfo=timezone.utc)
    order_id = generate_order_id(now)
    assert order_id.startswith(f"order:{int(now.timestamp() * 1000)}:")
    assert generate_order_id(now) != order_id


@freeze_time("2025-03-10 14:30:05")
def test_record_fields(ledger):
    record = ledger.record("1.2.3.4", OrderSide.BUY, Decimal("1"), make_result("1", "250"))

    assert record.ip == "1.2.3.4"
    assert record.date == "2025-03-10"
    assert record.time == "14:30:05"
    assert record.total_cost_or_revenue == Decimal("250")
    assert record.status == "filled"

    data = record.to_dict()
    assert data["side"] == "buy"
    assert data["avg_price"] == 250.0
    assert data["timestamp"] == int(datetime(2025, 3, 10, 14, 30, 5, tzinfo=timezone.utc).timestamp() * 1000)


def test_query_by_ip_and_date(ledger):
    with freeze_time("2025-03-10 09:00:00"):
        ledger.record("1.1.1.1", OrderSide.BUY, Decimal("1"), make_result())
        ledger.record("2.2.2.2", OrderSide.SELL, Decimal("1"), make_result())
    with freeze_time("2025-03-11 09:00:00"):
        ledger.record("1.1.1.1", OrderSide.SELL, Decimal("1"), make_result())

        assert len(ledger.by_ip("1.1.1.1")) == 2
        assert len(ledger.by_ip("1.1.1.1", "2025-03-10")) == 1
        assert len(ledger.by_ip("1.1.1.1", date(2025, 3, 11))) == 1
        assert len(ledger.by_date("2025-03-10")) == 2
        assert ledger.by_date("2025-03-12") == []


def test_summary_groups(ledger):
    with freeze_time("2025-03-10 09:00:00"):
        ledger.record("1.1.1.1", OrderSide.BUY, Decimal("1"), make_result("1", "100"))
    with freeze_time("2025-03-11 09:00:00"):
        ledger.record("1.1.1.1", OrderSide.BUY, Decimal("2"), make_result("2", "100"))
        ledger.record("2.2.2.2", OrderSide.SELL, Decimal("1"), make_result("0.5", "90", ExecutionStatus.PARTIAL))

        summary = ledger.summary()

    assert summary["total_orders"] == 3
    assert summary["total_traded"] == 3.5
    assert summary["total_cost_or_revenue"] == 345.0
    assert [g["ip"] for g in summary["grouped_by_ip"]] == ["1.1.1.1", "2.2.2.2"]
    assert [g["date"] for g in summary["grouped_by_date"]] == ["2025-03-11", "2025-03-10"]
    assert summary["grouped_by_ip"][0]["order_count"] == 2


def test_retention_prunes_old_records(ledger):
    with freeze_time("2025-01-01 00:00:00"):
        ledger.record("1.1.1.1", OrderSide.BUY, Decimal("1"), make_result())

    with freeze_time(datetime(2025, 1, 1, tzinfo=timezone.utc) + timedelta(days=31)):
        assert ledger.all() == []
        ledger.record("1.1.1.1", OrderSide.BUY, Decimal("1"), make_result())
        assert len(ledger) == 1


def test_max_records_evicts_oldest():
    ledger = OrderHistoryLedger(HistoryConfig(max_records=3))
    for i in range(5):
        ledger.record(f"10.0.0.{i}", OrderSide.BUY, Decimal("1"), make_result())

    assert len(ledger) == 3
    assert [r.ip for r in ledger.all()] == ["10.0.0.2", "10.0.0.3", "10.0.0.4"]


def test_clear(ledger):
    ledger.record("1.1.1.1", OrderSide.BUY, Decimal("1"), make_result())
    ledger.clear()
    assert len(ledger) == 0
