"""In-memory token-bucket rate limiter.

Instances are created per deployment unit and injected into the LLM
collaborator wrapper and the API layer; there is no module-level limiter.
"""

import time
from collections import defaultdict
from typing import Any, Callable, Dict, Tuple

from brain_chat.core.errors import RateLimitExceeded
from brain_chat.core.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    Simple token bucket rate limiter.

    Tracks requests per key (e.g., brain_id or a collaborator name) and
    enforces limits. Uses in-memory storage - for multi-process deployments,
    back this with Redis.
    """

    def __init__(
        self,
        requests_per_minute: int = 10,
        burst_size: int = 15,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize rate limiter.

        Args:
            requests_per_minute: Sustained rate limit
            burst_size: Maximum burst size
            clock: Monotonic time source in seconds
        """
        self.requests_per_minute = requests_per_minute
        self.burst_size = burst_size
        self.refill_rate = requests_per_minute / 60.0  # tokens per second
        self._clock = clock

        # Storage: key -> (tokens, last_refill_time)
        self._buckets: Dict[str, Tuple[float, float]] = {}
        self._request_counts: Dict[str, int] = defaultdict(int)

    def _refill_bucket(self, key: str) -> None:
        """Refill tokens in bucket based on elapsed time."""
        now = self._clock()
        current_tokens, last_refill = self._buckets.get(key, (float(self.burst_size), now))

        elapsed = now - last_refill
        new_tokens = min(self.burst_size, current_tokens + elapsed * self.refill_rate)

        self._buckets[key] = (new_tokens, now)

    def check_limit(self, key: str, cost: float = 1.0) -> bool:
        """
        Consume ``cost`` tokens for ``key``.

        Returns:
            True if allowed

        Raises:
            RateLimitExceeded: If the bucket does not hold enough tokens
        """
        self._refill_bucket(key)
        current_tokens, last_refill = self._buckets[key]

        if current_tokens >= cost:
            self._buckets[key] = (current_tokens - cost, last_refill)
            self._request_counts[key] += 1
            return True

        retry_after = int((cost - current_tokens) / self.refill_rate) + 1
        logger.warning(
            f"Rate limit exceeded for key: {key}, "
            f"tokens: {current_tokens:.2f}/{self.burst_size}, "
            f"retry after: {retry_after}s"
        )
        raise RateLimitExceeded(key, retry_after)

    def get_stats(self, key: str) -> Dict[str, Any]:
        """Get rate limit stats for a key."""
        self._refill_bucket(key)
        current_tokens, _ = self._buckets[key]

        return {
            "tokens_remaining": int(current_tokens),
            "burst_size": self.burst_size,
            "requests_per_minute": self.requests_per_minute,
            "total_requests": self._request_counts.get(key, 0),
        }

    def reset(self, key: str) -> None:
        """Reset rate limit for a key."""
        self._buckets.pop(key, None)
        self._request_counts.pop(key, None)

        logger.info(f"Rate limit reset for key: {key}")
