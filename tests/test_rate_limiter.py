"""Tests for the sliding-window rate limiter."""

from depthbook.config_loader import RateLimitConfig
from depthbook.server.ratelimit import SlidingWindowRateLimiter


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def make_limiter(max_requests=3, window=60.0, enabled=True):
    clock = FakeClock()
    config = RateLimitConfig(enabled=enabled, max_requests=max_requests, window_seconds=window)
    return SlidingWindowRateLimiter(config, clock=clock), clock


def test_allows_up_to_limit():
    limiter, _ = make_limiter()
    assert [limiter.hit("a") for _ in range(4)] == [True, True, True, False]
    assert limiter.remaining("a") == 0


def test_window_slides():
    limiter, clock = make_limiter(max_requests=2, window=10)
    limiter.hit("a")
    clock.now = 5
    limiter.hit("a")
    assert limiter.hit("a") is False
    assert limiter.retry_after("a") == 5

    clock.now = 10.5
    # First hit has left the window, second has not
    assert limiter.hit("a") is True
    assert limiter.hit("a") is False


def test_clients_are_independent():
    limiter, _ = make_limiter(max_requests=1)
    assert limiter.hit("a") is True
    assert limiter.hit("b") is True
    assert limiter.hit("a") is False


def test_disabled_always_allows():
    limiter, _ = make_limiter(max_requests=1, enabled=False)
    assert all(limiter.hit("a") for _ in range(10))


def test_reset():
    limiter, _ = make_limiter(max_requests=1)
    limiter.hit("a")
    limiter.reset()
    assert limiter.hit("a") is True


def test_idle_clients_are_forgotten():
    limiter, clock = make_limiter(max_requests=2, window=10)
    for i in range(20):
        limiter.hit(f"10.0.0.{i}")
    assert limiter.tracked_clients == 20

    clock.now = 11
    limiter.hit("a")
    assert limiter.tracked_clients == 1


def test_expired_window_is_dropped_on_check():
    limiter, clock = make_limiter(max_requests=1, window=10)
    limiter.hit("a")
    clock.now = 10
    assert limiter.remaining("a") == 1
    assert limiter.tracked_clients == 0
