"""Tests for UpdateScheduler."""

from __future__ import annotations

import asyncio

import pytest

from depthbook.book.models import OrderBook
from depthbook.book.store import OrderBookStore
from depthbook.config_loader import DistributionConfig, ExchangeConfig, UpdaterConfig
from depthbook.constants import MessageType, SchedulerState
from depthbook.distribution.channel import InProcessChannel
from depthbook.errors import FetchError
from depthbook.exchange.base import QuoteConnector
from depthbook.scheduler.ticker import IntervalTicker, ManualTicker
from depthbook.scheduler.updater import UpdateScheduler


def make_book(base: int) -> OrderBook:
    return OrderBook.from_pairs(
        [[base - i, 1] for i in range(1, 6)],
        [[base + i, 1] for i in range(1, 6)],
    )


class ScriptedConnector(QuoteConnector):
    """Returns (or raises) queued responses in order; repeats the last one."""

    name = "scripted"

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.gate: asyncio.Event | None = None

    async def fetch_quotes(self, symbol: str, depth: int) -> OrderBook:
        self.calls.append((symbol, depth))
        if self.gate is not None:
            await self.gate.wait()
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def store():
    return OrderBookStore()


@pytest.fixture
def channel(store):
    return InProcessChannel(store, DistributionConfig(top_levels=3))


@pytest.fixture
def ticker():
    return ManualTicker()


def make_scheduler(connector, store, channel, ticker):
    return UpdateScheduler(
        connector,
        store,
        channel,
        exchange_config=ExchangeConfig(symbol="BTC/USDT", depth_levels=5),
        updater_config=UpdaterConfig(interval_ms=2000),
        distribution_config=DistributionConfig(top_levels=3),
        ticker=ticker,
    )


@pytest.mark.asyncio
async def test_run_cycle_commits_and_publishes(store, channel, ticker):
    connector = ScriptedConnector(make_book(100))
    scheduler = make_scheduler(connector, store, channel, ticker)
    sub = channel.subscribe()

    assert await scheduler.run_cycle() is True

    assert connector.calls == [("BTC/USDT", 5)]
    assert store.read_full().best_bid.price == 99
    snapshot, delta = sub.drain()
    assert snapshot.type == MessageType.SNAPSHOT
    assert delta.type == MessageType.DELTA
    assert len(delta.book.bids) == 3
    assert scheduler.last_success is not None


@pytest.mark.asyncio
async def test_trigger_update_runs_one_cycle_while_idle(store, channel, ticker):
    scheduler = make_scheduler(ScriptedConnector(make_book(100)), store, channel, ticker)

    assert await scheduler.trigger_update() is True

    assert scheduler.state == SchedulerState.IDLE
    assert scheduler.cycles == 1
    assert store.version == 1


@pytest.mark.asyncio
async def test_unsorted_upstream_book_is_normalized(store, channel, ticker):
    shuffled = OrderBook.from_pairs([[97, 1], [99, 1], [98, 0]], [[103, 1], [101, 1]])
    scheduler = make_scheduler(ScriptedConnector(shuffled), store, channel, ticker)

    assert await scheduler.run_cycle() is True

    book = store.read_full()
    assert [level.price for level in book.bids] == [99, 97]
    assert [level.price for level in book.asks] == [101, 103]


@pytest.mark.asyncio
async def test_consecutive_cycles_deliver_in_order(store, channel, ticker):
    c1, c2 = make_book(100), make_book(200)
    scheduler = make_scheduler(ScriptedConnector(c1, c2), store, channel, ticker)
    sub = channel.subscribe()
    sub.drain()

    await scheduler.start()
    await ticker.tick()
    await scheduler.stop()

    deltas = sub.drain()
    assert [m.type for m in deltas] == [MessageType.DELTA, MessageType.DELTA]
    assert deltas[0].book == c1.top(3)
    assert deltas[1].book == c2.top(3)


@pytest.mark.asyncio
async def test_fetch_error_leaves_store_and_subscribers_untouched(store, channel, ticker):
    connector = ScriptedConnector(make_book(100), FetchError(attempts=3), make_book(300))
    scheduler = make_scheduler(connector, store, channel, ticker)

    await scheduler.start()
    sub = channel.subscribe()
    sub.drain()

    await ticker.tick()
    assert store.read_full().best_bid.price == 99
    assert sub.drain() == []
    assert scheduler.failures == 1
    assert "3 attempts" in scheduler.last_error

    # Next tick proceeds normally
    await ticker.tick()
    assert store.read_full().best_bid.price == 299
    assert len(sub.drain()) == 1
    assert scheduler.last_error is None

    await scheduler.stop()


@pytest.mark.asyncio
async def test_crossed_book_skips_cycle(store, channel, ticker):
    crossed = OrderBook.from_pairs([[105, 1]], [[101, 1]])
    connector = ScriptedConnector(make_book(100), crossed)
    scheduler = make_scheduler(connector, store, channel, ticker)
    sub = channel.subscribe()

    assert await scheduler.run_cycle() is True
    sub.drain()

    assert await scheduler.run_cycle() is False
    assert store.read_full().best_bid.price == 99
    assert sub.drain() == []
    assert "not_crossed" in scheduler.last_error


@pytest.mark.asyncio
async def test_unexpected_error_never_propagates(store, channel, ticker):
    scheduler = make_scheduler(ScriptedConnector(RuntimeError("boom")), store, channel, ticker)

    assert await scheduler.run_cycle() is False
    assert scheduler.failures == 1
    assert scheduler.last_error == "boom"


@pytest.mark.asyncio
async def test_start_stop_states(store, channel, ticker):
    scheduler = make_scheduler(ScriptedConnector(make_book(100)), store, channel, ticker)
    assert scheduler.state == SchedulerState.IDLE

    # Stop while idle is a no-op
    await scheduler.stop()

    await scheduler.start()
    assert scheduler.state == SchedulerState.RUNNING
    assert store.has_data  # first cycle runs immediately

    # Second start is ignored
    await scheduler.start()
    assert scheduler.cycles == 1

    await scheduler.stop()
    assert scheduler.state == SchedulerState.IDLE
    assert scheduler.status()["running"] is False


@pytest.mark.asyncio
async def test_fetch_completing_after_stop_is_discarded(store, channel, ticker):
    connector = ScriptedConnector(make_book(100))
    connector.gate = asyncio.Event()
    scheduler = make_scheduler(connector, store, channel, ticker)
    sub = channel.subscribe()
    sub.drain()

    cycle = asyncio.create_task(scheduler.run_cycle())
    await asyncio.sleep(0)
    assert connector.calls

    await scheduler.stop()
    connector.gate.set()

    assert await cycle is False
    assert not store.has_data
    assert sub.drain() == []


@pytest.mark.asyncio
async def test_stop_during_first_cycle(store, channel, ticker):
    connector = ScriptedConnector(make_book(100))
    connector.gate = asyncio.Event()
    scheduler = make_scheduler(connector, store, channel, ticker)

    starting = asyncio.create_task(scheduler.start())
    await asyncio.sleep(0)
    await scheduler.stop()
    connector.gate.set()
    await starting

    assert scheduler.state == SchedulerState.IDLE
    assert not store.has_data


@pytest.mark.asyncio
async def test_cycles_do_not_overlap(store, channel, ticker):
    connector = ScriptedConnector(make_book(100))
    connector.gate = asyncio.Event()
    scheduler = make_scheduler(connector, store, channel, ticker)

    first = asyncio.create_task(scheduler.run_cycle())
    second = asyncio.create_task(scheduler.run_cycle())
    await asyncio.sleep(0)

    # Second cycle waits on the lock, not on the connector
    assert len(connector.calls) == 1

    connector.gate.set()
    assert await first is True
    assert await second is True
    assert len(connector.calls) == 2


class TestIntervalTicker:
    @pytest.mark.asyncio
    async def test_fixed_rate_schedule(self):
        now = [0.0]
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)
            now[0] += delay

        ticker = IntervalTicker(2.0, clock=lambda: now[0], sleep=fake_sleep)
        await ticker.wait()
        now[0] += 0.5  # cycle work
        await ticker.wait()

        assert sleeps == [2.0, 1.5]

    @pytest.mark.asyncio
    async def test_overrun_skips_missed_ticks(self):
        now = [0.0]
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)
            now[0] += delay

        ticker = IntervalTicker(2.0, clock=lambda: now[0], sleep=fake_sleep)
        await ticker.wait()  # due at 2.0
        now[0] += 5.0  # cycle overran to 7.0
        await ticker.wait()

        assert sleeps == [2.0, pytest.approx(1.0)]
        assert ticker.skipped == 2

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            IntervalTicker(0)
