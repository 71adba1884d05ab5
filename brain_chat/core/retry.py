"""Bounded retry with exponential backoff for LLM collaborator calls.

One wrapper applied to generation, intent analysis and summarization so the
retry policy lives in one place.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import anthropic
import openai

from brain_chat.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Transport-level failures from either SDK are always worth another attempt
_RETRYABLE_EXCEPTIONS: tuple[type[BaseException], ...] = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    anthropic.APIConnectionError,
    anthropic.APITimeoutError,
)

# Status codes worth another attempt; any other 4xx is a caller error
_RETRYABLE_STATUS_CODES = frozenset({408, 409, 429})


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration for a collaborator call."""

    max_retries: int = 2
    initial_delay: float = 1.0
    max_delay: float = 20.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (0-based)."""
        return min(self.max_delay, self.initial_delay * (2**attempt))


def is_retryable(exc: BaseException) -> bool:
    """Whether an SDK error is transient."""
    if isinstance(exc, _RETRYABLE_EXCEPTIONS):
        return True
    status = getattr(exc, "status_code", None)
    if isinstance(exc, (openai.APIStatusError, anthropic.APIStatusError)) and isinstance(status, int):
        return status in _RETRYABLE_STATUS_CODES or status >= 500
    return False


async def with_retry(
    call: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    operation: str = "llm_call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``call`` until it succeeds, fails non-retryably, or retries run out.

    Args:
        call: Zero-arg coroutine factory (called once per attempt)
        policy: Retry bounds and backoff
        operation: Name used in log lines
        sleep: Awaitable sleep, injectable for tests

    Returns:
        Result of the first successful attempt

    Raises:
        The last exception raised by ``call``
    """
    for attempt in range(policy.max_retries + 1):
        try:
            return await call()
        except Exception as e:
            if not is_retryable(e):
                raise
            if attempt >= policy.max_retries:
                logger.error(f"{operation}: all {attempt + 1} attempts failed: {e}")
                raise
            delay = policy.delay_for(attempt)
            logger.warning(f"{operation}: attempt {attempt + 1} failed: {e}. Retry in {delay}s")
            await sleep(delay)

    raise RuntimeError("unreachable")  # pragma: no cover
