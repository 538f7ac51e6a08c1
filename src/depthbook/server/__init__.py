"""Server Module - HTTP and WebSocket transport."""

from depthbook.server.app import CONTEXT_KEY, client_ip, create_web_app, peer_address
from depthbook.server.context import ServiceContext, build_connector
from depthbook.server.ratelimit import SlidingWindowRateLimiter
from depthbook.server.schemas import MarketOrderRequest

__all__ = [
    "create_web_app",
    "client_ip",
    "peer_address",
    "CONTEXT_KEY",
    "ServiceContext",
    "build_connector",
    "SlidingWindowRateLimiter",
    "MarketOrderRequest",
]
