"""aiohttp application exposing the order book service.

Routes (prefix defaults to /api):

- POST {prefix}/market                      simulate a market order
- GET  {prefix}/health[/exchange|/orderbook] health checks
- GET  {prefix}/status[/config|/endpoints]  runtime status
- GET  {prefix}/orders/history[/ip/{ip}|/date/{date}]  order history
- GET  {ws_path}                            live depth stream (snapshot, then deltas)
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import math
from datetime import date, datetime, timezone
from typing import Any

from aiohttp import WSMsgType, web
from pydantic import ValidationError

from depthbook.book.models import ChannelMessage, timestamp_to_ms
from depthbook.constants import APP_NAME, APP_VERSION, RATE_LIMITED
from depthbook.distribution.channel import Subscription
from depthbook.errors import (
    InsufficientLiquidityError,
    InvalidOrderError,
    StoreUnavailableError,
    SubscriberOverflowError,
)
from depthbook.server.context import ServiceContext
from depthbook.server.schemas import MarketOrderRequest

logger = logging.getLogger(__name__)

CONTEXT_KEY = web.AppKey("context", ServiceContext)

_LOOPBACK = {"::1", "::ffff:127.0.0.1"}


def peer_address(request: web.Request) -> str:
    """Socket address of the caller; proxy headers are ignored."""
    remote = request.remote or "127.0.0.1"
    if remote in _LOOPBACK:
        return "127.0.0.1"
    return remote


def client_ip(request: web.Request) -> str:
    """Client address for order history, honouring the usual proxy headers."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    for header in ("X-Client-IP", "X-Real-IP"):
        value = request.headers.get(header)
        if value:
            return value.strip()

    return peer_address(request)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_response(
    status: int,
    message: str,
    headers: dict[str, str] | None = None,
    **extra: Any,
) -> web.Response:
    body = {"statusCode": status, "message": message, **extra}
    return web.json_response(body, status=status, headers=headers)


def _validation_message(err: dict[str, Any]) -> str:
    return str(err.get("msg", "Invalid value")).removeprefix("Value error, ")


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Map domain errors to HTTP status codes."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except InvalidOrderError as e:
        return _error_response(400, str(e), errors=e.errors)
    except InsufficientLiquidityError as e:
        return _error_response(400, str(e), result=e.result.to_dict())
    except StoreUnavailableError as e:
        return _error_response(503, str(e))
    except Exception as e:
        logger.error(f"Unhandled error on {request.method} {request.path}: {e}", exc_info=True)
        return _error_response(500, "Internal server error")


# ============================================
# Market orders
# ============================================


async def market_order(request: web.Request) -> web.Response:
    ctx = request.app[CONTEXT_KEY]
    ip = client_ip(request)
    peer = peer_address(request)

    if not ctx.limiter.hit(peer):
        retry_after = math.ceil(ctx.limiter.retry_after(peer))
        return _error_response(429, RATE_LIMITED, headers={"Retry-After": str(retry_after)})

    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        raise InvalidOrderError("Request body must be valid JSON") from e

    try:
        order = MarketOrderRequest.model_validate(
            body, context={"market_order": ctx.config.market_order}
        )
    except ValidationError as e:
        errors = [
            {
                "field": ".".join(str(part) for part in err["loc"]) or "body",
                "message": _validation_message(err),
            }
            for err in e.errors()
        ]
        message = errors[0]["message"] if errors else "Invalid request"
        raise InvalidOrderError(message, errors) from e

    result = ctx.service.execute(order.side, order.amount, client_ip=ip)
    return web.json_response(result.to_dict())


# ============================================
# Health
# ============================================


def _exchange_healthy(ctx: ServiceContext) -> bool:
    try:
        return bool(ctx.connector.info().get("id"))
    except Exception as e:
        logger.warning(f"Exchange health check failed: {e}")
        return False


async def health(request: web.Request) -> web.Response:
    ctx = request.app[CONTEXT_KEY]

    exchange_ok = _exchange_healthy(ctx)
    updater_ok = ctx.scheduler.is_running
    book_ok = ctx.store.has_data
    checks = (exchange_ok, updater_ok, book_ok)

    if all(checks):
        overall = "healthy"
    elif any(checks):
        overall = "degraded"
    else:
        overall = "unhealthy"

    body = {
        "status": overall,
        "timestamp": _now_iso(),
        "uptime": round(ctx.uptime, 3),
        "services": {
            "exchange": {
                "status": "connected" if exchange_ok else "disconnected",
                "message": "Exchange connector is operational"
                if exchange_ok
                else "Cannot reach exchange connector",
            },
            "orderBook": {
                "status": "running" if updater_ok else "stopped",
                "message": "Order book updater is running"
                if updater_ok
                else "Order book updater is not running",
            },
            "store": {
                "status": "available" if book_ok else "empty",
                "message": "Order book data available"
                if book_ok
                else "Order book data not available",
            },
        },
        "config": {
            "connector": ctx.config.environment.connector.value,
            "exchange": ctx.config.exchange.name,
            "symbol": ctx.config.exchange.symbol,
            "updateInterval": ctx.config.updater.interval_ms,
        },
    }
    return web.json_response(body, status=503 if overall == "unhealthy" else 200)


async def health_exchange(request: web.Request) -> web.Response:
    ctx = request.app[CONTEXT_KEY]
    healthy = _exchange_healthy(ctx)
    return web.json_response(
        {
            "service": "exchange",
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": _now_iso(),
            "details": ctx.connector.info() if healthy else None,
        }
    )


async def health_orderbook(request: web.Request) -> web.Response:
    ctx = request.app[CONTEXT_KEY]
    details = ctx.scheduler.status()
    return web.json_response(
        {
            "service": "orderbook",
            "status": "healthy" if details["running"] else "unhealthy",
            "timestamp": _now_iso(),
            "details": details,
        }
    )


# ============================================
# Status
# ============================================


async def status(request: web.Request) -> web.Response:
    ctx = request.app[CONTEXT_KEY]
    book = ctx.store.read_top(1)
    age = ctx.store.age_seconds()

    return web.json_response(
        {
            "application": {
                "name": APP_NAME,
                "version": APP_VERSION,
                "uptime": round(ctx.uptime, 3),
                "timestamp": _now_iso(),
            },
            "updater": ctx.scheduler.status(),
            "orderBook": {
                "available": ctx.store.has_data,
                "version": ctx.store.version,
                "ageSeconds": round(age, 3) if age is not None else None,
                "timestamp": timestamp_to_ms(book.timestamp) if not book.is_empty else None,
                "bestBid": float(book.best_bid.price) if book.best_bid else None,
                "bestAsk": float(book.best_ask.price) if book.best_ask else None,
            },
            "distribution": ctx.channel.status(),
            "history": {"records": len(ctx.ledger)},
        }
    )


async def status_config(request: web.Request) -> web.Response:
    ctx = request.app[CONTEXT_KEY]
    return web.json_response(ctx.config.public_view())


async def status_endpoints(request: web.Request) -> web.Response:
    endpoints = []
    for route in request.app.router.routes():
        if route.method == "HEAD":
            continue
        info = route.resource.get_info() if route.resource else {}
        path = info.get("path") or info.get("formatter")
        endpoints.append({"method": route.method, "path": path})
    return web.json_response({"endpoints": endpoints})


# ============================================
# Order history
# ============================================


def _parse_date(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError:
        raise web.HTTPBadRequest(
            text=json.dumps(
                {"statusCode": 400, "message": "Invalid date format, expected YYYY-MM-DD"}
            ),
            content_type="application/json",
        ) from None


async def history_all(request: web.Request) -> web.Response:
    ctx = request.app[CONTEXT_KEY]
    return web.json_response(ctx.ledger.summary())


async def history_by_ip(request: web.Request) -> web.Response:
    ctx = request.app[CONTEXT_KEY]
    ip = request.match_info["ip"]
    on_date = _parse_date(request.query.get("date"))

    orders = ctx.ledger.by_ip(ip, on_date)
    return web.json_response(
        {"ip": ip, "date": on_date, "count": len(orders), "orders": [o.to_dict() for o in orders]}
    )


async def history_by_date(request: web.Request) -> web.Response:
    ctx = request.app[CONTEXT_KEY]
    on_date = _parse_date(request.match_info["date"])

    orders = ctx.ledger.by_date(on_date)
    return web.json_response(
        {"date": on_date, "count": len(orders), "orders": [o.to_dict() for o in orders]}
    )


# ============================================
# Live depth stream
# ============================================


async def _pump(ws: web.WebSocketResponse, subscription: Subscription) -> None:
    """Forward channel messages to the socket until either side closes."""
    try:
        async for message in subscription:
            await ws.send_json(message.to_dict())
    except ConnectionResetError:
        logger.debug(f"Socket for {subscription.name} went away mid-send")
        return

    if not ws.closed:
        # Channel closed the subscription (slow consumer or shutdown)
        await ws.close(message=(subscription.close_reason or "closed").encode())


async def depth_socket(request: web.Request) -> web.WebSocketResponse:
    ctx = request.app[CONTEXT_KEY]
    ws = web.WebSocketResponse(heartbeat=30.0)
    await ws.prepare(request)

    ip = client_ip(request)
    try:
        subscription = ctx.channel.subscribe(name=f"ws:{ip}")
    except SubscriberOverflowError as e:
        await ws.send_json(ChannelMessage.error(str(e)).to_dict())
        await ws.close()
        return ws

    pump = asyncio.create_task(_pump(ws, subscription))
    try:
        async for msg in ws:
            if msg.type == WSMsgType.ERROR:
                logger.warning(f"WebSocket error from {subscription.name}: {ws.exception()}")
                break
            # Inbound messages are ignored; the stream is one-way
    finally:
        ctx.channel.unsubscribe(subscription)
        pump.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await pump

    return ws


# ============================================
# Application factory
# ============================================


async def _on_startup(app: web.Application) -> None:
    await app[CONTEXT_KEY].start()


async def _on_cleanup(app: web.Application) -> None:
    await app[CONTEXT_KEY].stop()


def create_web_app(context: ServiceContext, manage_lifecycle: bool = True) -> web.Application:
    """
    Build the aiohttp application.

    With manage_lifecycle the context is started on app startup and stopped
    on cleanup.
    """
    app = web.Application(middlewares=[error_middleware])
    app[CONTEXT_KEY] = context

    prefix = f"/{context.config.server.api_prefix}" if context.config.server.api_prefix else ""

    app.router.add_post(f"{prefix}/market", market_order)
    app.router.add_get(f"{prefix}/health", health)
    app.router.add_get(f"{prefix}/health/exchange", health_exchange)
    app.router.add_get(f"{prefix}/health/orderbook", health_orderbook)
    app.router.add_get(f"{prefix}/status", status)
    app.router.add_get(f"{prefix}/status/config", status_config)
    app.router.add_get(f"{prefix}/status/endpoints", status_endpoints)
    app.router.add_get(f"{prefix}/orders/history", history_all)
    app.router.add_get(f"{prefix}/orders/history/ip/{{ip}}", history_by_ip)
    app.router.add_get(f"{prefix}/orders/history/date/{{date}}", history_by_date)
    app.router.add_get(context.config.server.ws_path, depth_socket)

    if manage_lifecycle:
        app.on_startup.append(_on_startup)
        app.on_cleanup.append(_on_cleanup)

    return app
