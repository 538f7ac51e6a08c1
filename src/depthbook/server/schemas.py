"""Request models for the HTTP transport."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ValidationInfo, field_validator

from depthbook.config_loader import MarketOrderConfig
from depthbook.constants import INVALID_SIDE, OrderSide


class MarketOrderRequest(BaseModel):
    """
    Body of POST /market.

    Size limits come from the validation context:
    ``MarketOrderRequest.model_validate(body, context={"market_order": cfg})``.
    Without a context the default limits apply.
    """

    side: OrderSide
    amount: Decimal

    @field_validator("side", mode="before")
    @classmethod
    def normalize_side(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().lower()
        if v not in ("buy", "sell"):
            raise ValueError(INVALID_SIDE)
        return v

    @field_validator("amount", mode="before")
    @classmethod
    def reject_booleans(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("Amount must be a number")
        return v

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal, info: ValidationInfo) -> Decimal:
        limits = (info.context or {}).get("market_order") or MarketOrderConfig()
        if v < limits.min_order_size:
            raise ValueError(f"Amount must be at least {limits.min_order_size}")
        if v > limits.max_order_size:
            raise ValueError(f"Amount cannot exceed {limits.max_order_size}")
        return v
