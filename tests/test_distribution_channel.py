"""Tests for the in-process distribution channel."""

from __future__ import annotations

import asyncio

import pytest

from depthbook.book.models import ChannelMessage, OrderBook
from depthbook.book.store import OrderBookStore
from depthbook.config_loader import DistributionConfig
from depthbook.constants import MessageType
from depthbook.distribution.channel import InProcessChannel, Subscription
from depthbook.errors import SubscriberOverflowError


def make_book(base: int) -> OrderBook:
    return OrderBook.from_pairs(
        [[base - i, 1] for i in range(1, 4)],
        [[base + i, 1] for i in range(1, 4)],
    )


@pytest.fixture
def store():
    return OrderBookStore()


@pytest.fixture
def channel(store):
    return InProcessChannel(store, DistributionConfig(max_subscribers=3, top_levels=2, queue_size=4))


def test_publish_without_subscribers_is_noop(channel):
    assert channel.publish(make_book(100)) == 0
    assert channel.published == 0


def test_first_message_is_snapshot_of_top_levels(channel, store):
    store.replace(make_book(100))

    sub = channel.subscribe("client-a")
    messages = sub.drain()

    assert len(messages) == 1
    assert messages[0].type == MessageType.SNAPSHOT
    assert len(messages[0].book.bids) == 2
    assert len(messages[0].book.asks) == 2


def test_snapshot_of_empty_store(channel):
    sub = channel.subscribe()
    (message,) = sub.drain()

    assert message.type == MessageType.SNAPSHOT
    assert message.book.is_empty
    assert message.to_dict()["data"]["bids"] == []


def test_snapshot_then_deltas_in_order(channel, store):
    store.replace(make_book(100))
    sub = channel.subscribe()

    channel.publish(make_book(200))
    channel.publish(make_book(300))

    messages = sub.drain()
    assert [m.type for m in messages] == [MessageType.SNAPSHOT, MessageType.DELTA, MessageType.DELTA]
    assert [m.book.best_bid.price for m in messages[1:]] == [199, 299]


def test_late_subscriber_gets_no_earlier_deltas(channel, store):
    early = channel.subscribe()
    channel.publish(make_book(100))
    store.replace(make_book(100))

    late = channel.subscribe()
    channel.publish(make_book(200))

    assert len(early.drain()) == 3
    late_messages = late.drain()
    assert [m.type for m in late_messages] == [MessageType.SNAPSHOT, MessageType.DELTA]
    assert late_messages[0].book.best_bid.price == 99


def test_overflow_rejected(channel):
    for _ in range(3):
        channel.subscribe()

    with pytest.raises(SubscriberOverflowError, match="Maximum connections exceeded"):
        channel.subscribe()
    assert channel.subscriber_count == 3


def test_unsubscribe_frees_slot_and_is_idempotent(channel):
    subs = [channel.subscribe() for _ in range(3)]

    channel.unsubscribe(subs[0])
    channel.unsubscribe(subs[0])

    assert channel.subscriber_count == 2
    assert subs[0].closed
    channel.subscribe()
    assert channel.subscriber_count == 3


def test_unsubscribed_receives_nothing(channel):
    a = channel.subscribe()
    b = channel.subscribe()
    channel.unsubscribe(a)

    assert channel.publish(make_book(100)) == 1
    assert a.drain() == []
    assert len(b.drain()) == 2


def test_slow_consumer_dropped(channel):
    slow = channel.subscribe("slow")
    fast = channel.subscribe("fast")

    for i in range(6):
        fast.drain()
        channel.publish(make_book(100 + i * 10))

    assert slow.closed
    assert slow.close_reason == "slow_consumer"
    assert channel.dropped == 1
    assert channel.subscriber_count == 1
    assert not fast.closed


def test_close_ends_all_subscriptions(channel):
    subs = [channel.subscribe() for _ in range(2)]
    channel.close()

    assert channel.subscriber_count == 0
    assert all(s.close_reason == "shutdown" for s in subs)


@pytest.mark.asyncio
async def test_async_iteration_ends_on_close(channel):
    sub = channel.subscribe()
    channel.publish(make_book(100))

    received = []

    async def consume():
        async for message in sub:
            received.append(message.type)

    task = asyncio.create_task(consume())
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    channel.unsubscribe(sub)
    await asyncio.wait_for(task, timeout=1)

    assert received[0] == MessageType.SNAPSHOT


def test_subscription_offer_respects_capacity():
    sub = Subscription(queue_size=2)
    book = make_book(100)

    assert sub.offer(ChannelMessage.delta(book))
    assert sub.offer(ChannelMessage.delta(book))
    assert not sub.offer(ChannelMessage.delta(book))
    sub.close()
    assert not sub.offer(ChannelMessage.delta(book))
