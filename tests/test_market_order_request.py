"""Tests for request validation."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from depthbook.config_loader import MarketOrderConfig
from depthbook.constants import OrderSide
from depthbook.server.schemas import MarketOrderRequest


def test_valid_request():
    req = MarketOrderRequest.model_validate({"side": "BUY", "amount": "0.5"})
    assert req.side == OrderSide.BUY
    assert req.amount == Decimal("0.5")


@pytest.mark.parametrize("side", ["long", "", None, 1])
def test_invalid_side(side):
    with pytest.raises(ValidationError, match="buy"):
        MarketOrderRequest.model_validate({"side": side, "amount": 1})


@pytest.mark.parametrize("amount", [0, -1, "0.00001", 1001])
def test_amount_out_of_default_range(amount):
    with pytest.raises(ValidationError):
        MarketOrderRequest.model_validate({"side": "sell", "amount": amount})


@pytest.mark.parametrize("amount", ["abc", True, None, "NaN"])
def test_amount_not_a_number(amount):
    with pytest.raises(ValidationError):
        MarketOrderRequest.model_validate({"side": "sell", "amount": amount})


def test_limits_from_context():
    limits = MarketOrderConfig(min_order_size=Decimal("1"), max_order_size=Decimal("2"))

    with pytest.raises(ValidationError, match="at least 1"):
        MarketOrderRequest.model_validate(
            {"side": "buy", "amount": "0.5"}, context={"market_order": limits}
        )

    req = MarketOrderRequest.model_validate(
        {"side": "buy", "amount": "1.5"}, context={"market_order": limits}
    )
    assert req.amount == Decimal("1.5")
