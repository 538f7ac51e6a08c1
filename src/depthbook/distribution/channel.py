"""Snapshot-then-delta distribution of order book updates."""

from __future__ import annotations

import asyncio
import itertools
import logging
from abc import ABC, abstractmethod

from depthbook.book.models import ChannelMessage, DeltaMessage
from depthbook.book.store import OrderBookStore
from depthbook.config_loader import DistributionConfig
from depthbook.errors import SubscriberOverflowError

logger = logging.getLogger(__name__)

_ids = itertools.count(1)

# Sentinel placed on a queue when a subscription closes
_CLOSED = None


class Subscription:
    """
    One subscriber's outbound stream.

    Iterate with ``async for message in subscription``; iteration ends once
    the subscription is closed (unsubscribed or dropped as a slow consumer).
    """

    def __init__(self, queue_size: int, name: str | None = None):
        self.id = next(_ids)
        self.name = name or f"sub-{self.id}"
        # One extra slot so the close sentinel always fits
        self._queue: asyncio.Queue[ChannelMessage | None] = asyncio.Queue(maxsize=queue_size + 1)
        self._capacity = queue_size
        self.closed = False
        self.close_reason: str | None = None
        self.delivered = 0

    def offer(self, message: ChannelMessage) -> bool:
        """Enqueue without waiting. False if closed or the queue is full."""
        if self.closed or self._queue.qsize() >= self._capacity:
            return False
        self._queue.put_nowait(message)
        self.delivered += 1
        return True

    def close(self, reason: str = "unsubscribed") -> None:
        """Close the stream, discarding anything not yet consumed."""
        if self.closed:
            return
        self.closed = True
        self.close_reason = reason
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    def drain(self) -> list[ChannelMessage]:
        """Return every queued message without waiting."""
        messages = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED:
                # Keep the sentinel for any pending iterator
                self._queue.put_nowait(_CLOSED)
                break
            messages.append(item)
        return messages

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> ChannelMessage:
        item = await self._queue.get()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    def __repr__(self) -> str:
        state = f"closed:{self.close_reason}" if self.closed else "open"
        return f"Subscription({self.name}, {state}, pending={self.pending})"


class DistributionChannel(ABC):
    """Publish/subscribe fan-out for book updates."""

    @abstractmethod
    def publish(self, delta: DeltaMessage) -> int:
        """Broadcast a delta; returns the number of subscribers it reached."""

    @abstractmethod
    def subscribe(self, name: str | None = None) -> Subscription:
        """Register a subscriber; its first message is a snapshot."""

    @abstractmethod
    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscriber (idempotent)."""

    @property
    @abstractmethod
    def subscriber_count(self) -> int:
        """Number of live subscribers."""


class InProcessChannel(DistributionChannel):
    """
    asyncio in-process channel.

    publish() and subscribe() never await, so within the event loop a
    subscribe's snapshot read and its enrollment cannot interleave with a
    publish: a subscriber sees the snapshot first and misses no delta after it.

    Each subscriber has a bounded queue. A subscriber whose queue is full when
    a delta arrives is dropped instead of stalling the publisher.
    """

    def __init__(self, store: OrderBookStore, config: DistributionConfig | None = None):
        self.store = store
        self.config = config or DistributionConfig()
        self._subscribers: dict[int, Subscription] = {}
        self.published = 0
        self.dropped = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, name: str | None = None) -> Subscription:
        if len(self._subscribers) >= self.config.max_subscribers:
            logger.warning(
                f"Connection limit exceeded ({self.config.max_subscribers}), rejecting {name or 'subscriber'}"
            )
            raise SubscriberOverflowError(self.config.max_subscribers)

        subscription = Subscription(self.config.queue_size, name=name)
        snapshot = self.store.read_top(self.config.top_levels)
        subscription.offer(ChannelMessage.snapshot(snapshot))
        self._subscribers[subscription.id] = subscription

        logger.info(f"Subscriber connected: {subscription.name} (total: {self.subscriber_count})")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        removed = self._subscribers.pop(subscription.id, None)
        subscription.close()
        if removed is not None:
            logger.info(
                f"Subscriber disconnected: {subscription.name} (total: {self.subscriber_count})"
            )

    def publish(self, delta: DeltaMessage) -> int:
        if not self._subscribers:
            return 0

        message = ChannelMessage.delta(delta)
        reached = 0
        for subscription in list(self._subscribers.values()):
            if subscription.offer(message):
                reached += 1
                continue
            self._subscribers.pop(subscription.id, None)
            subscription.close(reason="slow_consumer")
            self.dropped += 1
            logger.warning(
                f"Dropped slow subscriber {subscription.name} "
                f"(queue full at {self.config.queue_size} messages)"
            )

        self.published += 1
        logger.debug(f"Broadcast update to {reached} subscribers")
        return reached

    def close(self) -> None:
        """Close every subscription (shutdown)."""
        for subscription in list(self._subscribers.values()):
            subscription.close(reason="shutdown")
        self._subscribers.clear()

    def status(self) -> dict[str, int]:
        return {
            "subscribers": self.subscriber_count,
            "maxSubscribers": self.config.max_subscribers,
            "published": self.published,
            "dropped": self.dropped,
        }
