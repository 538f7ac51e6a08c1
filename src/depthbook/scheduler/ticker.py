"""Tick sources driving the update loop."""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class Ticker(ABC):
    """Source of update ticks."""

    @abstractmethod
    async def wait(self) -> None:
        """Block until the next tick is due."""

    def reset(self) -> None:
        """Restart the schedule from now."""


class IntervalTicker(Ticker):
    """
    Fixed-rate ticker.

    Ticks are due every `interval` seconds from the last reset. If a cycle
    overruns one or more ticks, the missed ticks are skipped rather than
    queued, so cycles never pile up.
    """

    def __init__(
        self,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if interval <= 0:
            raise ValueError(f"Interval must be positive, got: {interval}")
        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        self._next: float | None = None
        self.skipped = 0

    def reset(self) -> None:
        self._next = None

    async def wait(self) -> None:
        now = self._clock()
        if self._next is None:
            self._next = now + self.interval
        else:
            self._next += self.interval

        if self._next <= now:
            missed = int((now - self._next) // self.interval) + 1
            self._next += missed * self.interval
            self.skipped += missed
            logger.debug(f"Update cycle overran, skipping {missed} tick(s)")

        await self._sleep(self._next - now)


class ManualTicker(Ticker):
    """
    Ticker advanced by hand, for driving the scheduler without real time.

    advance() releases ticks; tick() releases one and waits until the
    consumer has finished with it and is waiting again.
    """

    def __init__(self) -> None:
        self._pending = 0
        self._released = asyncio.Event()
        self._idle = asyncio.Event()

    def advance(self, count: int = 1) -> None:
        self._pending += count
        self._idle.clear()
        self._released.set()

    async def tick(self, count: int = 1) -> None:
        for _ in range(count):
            self.advance()
            await self._idle.wait()

    async def wait(self) -> None:
        while self._pending == 0:
            self._released.clear()
            self._idle.set()
            await self._released.wait()
        self._pending -= 1
