"""Exception hierarchy for depthbook."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from depthbook.constants import (
    FETCH_FAILED,
    INSUFFICIENT_LIQUIDITY,
    MAX_CONNECTIONS_EXCEEDED,
    ORDER_BOOK_NOT_AVAILABLE,
)

if TYPE_CHECKING:
    from depthbook.book.models import ExecutionResult


class DepthBookError(Exception):
    """Base class for all depthbook errors."""


class FetchError(DepthBookError):
    """Upstream connector failed after exhausting its retry budget."""

    def __init__(self, message: str = FETCH_FAILED, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class BookValidationError(DepthBookError):
    """A candidate book violates an ordering or no-crossing invariant."""

    def __init__(self, invariant: str, detail: str, prices: tuple[Any, ...] = ()):
        super().__init__(f"{invariant}: {detail}")
        self.invariant = invariant
        self.detail = detail
        self.prices = prices


class InsufficientLiquidityError(DepthBookError):
    """Market order simulation could not fill anything."""

    def __init__(self, result: ExecutionResult, message: str = INSUFFICIENT_LIQUIDITY):
        super().__init__(message)
        self.result = result


class StoreUnavailableError(DepthBookError):
    """No book has been committed yet, or the committed one expired."""

    def __init__(self, message: str = ORDER_BOOK_NOT_AVAILABLE):
        super().__init__(message)


class SubscriberOverflowError(DepthBookError):
    """Admission control rejected a new subscriber."""

    def __init__(self, limit: int, message: str = MAX_CONNECTIONS_EXCEEDED):
        super().__init__(message)
        self.limit = limit


class InvalidOrderError(DepthBookError):
    """Market order request failed validation."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []
