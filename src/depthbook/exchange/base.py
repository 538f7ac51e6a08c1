"""Base quote connector interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from depthbook.book.models import OrderBook


class QuoteConnector(ABC):
    """
    Abstract source of order book quotes.

    fetch_quotes() returns a candidate book whose levels may come in any
    order; callers normalize and validate before committing. Implementations
    raise FetchError once they give up on a fetch.
    """

    name: str = "connector"

    async def connect(self) -> None:
        """Open any upstream session."""

    async def close(self) -> None:
        """Release upstream resources."""

    @abstractmethod
    async def fetch_quotes(self, symbol: str, depth: int) -> OrderBook:
        """Fetch the current book for symbol, up to depth levels per side."""

    def info(self) -> dict[str, str]:
        """Connector details for health endpoints."""
        return {"id": self.name, "name": self.name}

    async def __aenter__(self) -> QuoteConnector:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
