"""Tests for the token-bucket rate limiter."""

import pytest

from brain_chat.core.errors import RateLimitExceeded
from brain_chat.core.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_burst_then_limited():
    limiter = RateLimiter(requests_per_minute=60, burst_size=3, clock=FakeClock())

    for _ in range(3):
        assert limiter.check_limit("chat:brain-1") is True

    with pytest.raises(RateLimitExceeded) as exc_info:
        limiter.check_limit("chat:brain-1")

    assert exc_info.value.key == "chat:brain-1"
    assert exc_info.value.retry_after == 2


def test_tokens_refill_over_time():
    clock = FakeClock()
    limiter = RateLimiter(requests_per_minute=60, burst_size=1, clock=clock)

    limiter.check_limit("k")
    with pytest.raises(RateLimitExceeded):
        limiter.check_limit("k")

    clock.now += 1.0  # one token per second at 60/min
    assert limiter.check_limit("k") is True


def test_keys_are_independent():
    limiter = RateLimiter(requests_per_minute=60, burst_size=1, clock=FakeClock())

    limiter.check_limit("chat:a")
    assert limiter.check_limit("chat:b") is True


def test_stats_and_reset():
    limiter = RateLimiter(requests_per_minute=10, burst_size=5, clock=FakeClock())
    limiter.check_limit("k")
    limiter.check_limit("k")

    stats = limiter.get_stats("k")
    assert stats == {
        "tokens_remaining": 3,
        "burst_size": 5,
        "requests_per_minute": 10,
        "total_requests": 2,
    }

    limiter.reset("k")
    assert limiter.get_stats("k")["tokens_remaining"] == 5
    assert limiter.get_stats("k")["total_requests"] == 0
