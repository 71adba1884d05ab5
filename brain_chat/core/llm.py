"""LLM collaborators for generation, intent analysis and summarization.

Each collaborator wraps one SDK client with the shared retry policy and an
injected rate limiter, and maps every failure to the engine's error taxonomy.
"""

import json
import re
from typing import Any, Awaitable, Callable, Protocol, TypeVar

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from pydantic import BaseModel

from brain_chat.core.config import Settings
from brain_chat.core.errors import (
    ClassificationUnavailable,
    GenerationFailed,
    RateLimitExceeded,
    SummarizationFailed,
)
from brain_chat.core.logging import get_logger
from brain_chat.core.rate_limiter import RateLimiter
from brain_chat.core.retry import RetryPolicy, with_retry
from brain_chat.core.schemas_cards import GenerationResult

logger = get_logger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


class TextGenerator(Protocol):
    async def generate(self, messages: list[dict[str, str]]) -> GenerationResult: ...


class IntentAnalyzer(Protocol):
    async def analyze(self, system_prompt: str, user_prompt: str) -> dict[str, Any]: ...


class Summarizer(Protocol):
    async def summarize(self, system_prompt: str, transcript: str) -> str: ...


def _strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)```", cleaned, re.DOTALL)
    if fence_match:
        return fence_match.group(1).strip()

    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_llm_json_dict(raw_output: str) -> dict:
    """
    Parse LLM output as a JSON object.

    Raises:
        json.JSONDecodeError: If JSON parsing fails after cleanup
        ValueError: If the JSON is not an object
    """
    parsed = json.loads(_strip_llm_fences(raw_output))
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected JSON object, got {type(parsed).__name__}")
    return parsed


def parse_llm_json(raw_output: str, model: type[M]) -> M:
    """Parse LLM output as JSON and validate against a Pydantic model."""
    return model.model_validate(parse_llm_json_dict(raw_output))


async def _guarded_call(
    call: Callable[[], Awaitable[T]],
    *,
    operation: str,
    retry_policy: RetryPolicy,
    rate_limiter: RateLimiter | None,
) -> T:
    """Apply the rate limiter once, then the retry policy."""
    if rate_limiter is not None:
        rate_limiter.check_limit(f"llm:{operation}")
    return await with_retry(call, retry_policy, operation=operation)


class OpenAIGenerator:
    """Answer generation through the OpenAI chat completions API."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        temperature: float = 0.3,
        max_tokens: int = 2000,
        retry_policy: RetryPolicy | None = None,
        rate_limiter: RateLimiter | None = None,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.retry_policy = retry_policy or RetryPolicy()
        self.rate_limiter = rate_limiter

    async def generate(self, messages: list[dict[str, str]]) -> GenerationResult:
        """
        Generate an answer for the assembled chat messages.

        Raises:
            GenerationFailed: On any SDK failure, rate limiting, or empty output
        """
        try:
            completion = await _guarded_call(
                lambda: self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                ),
                operation="generation",
                retry_policy=self.retry_policy,
                rate_limiter=self.rate_limiter,
            )
        except RateLimitExceeded as e:
            raise GenerationFailed(str(e)) from e
        except Exception as e:
            logger.error(f"Answer generation failed: {e}")
            raise GenerationFailed(f"Failed to generate AI response: {e}") from e

        text = (completion.choices[0].message.content or "").strip() if completion.choices else ""
        if not text:
            raise GenerationFailed("Model returned an empty response")

        usage = completion.usage
        return GenerationResult(
            text=text,
            model=self.model,
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            total_tokens=getattr(usage, "total_tokens", 0) or 0,
        )


class OpenAIIntentAnalyzer:
    """JSON-mode intent analysis through a small OpenAI model."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "gpt-4o-mini",
        retry_policy: RetryPolicy | None = None,
        rate_limiter: RateLimiter | None = None,
    ):
        self.client = client
        self.model = model
        self.retry_policy = retry_policy or RetryPolicy()
        self.rate_limiter = rate_limiter

    async def analyze(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        """
        Return the model's JSON analysis.

        Raises:
            ClassificationUnavailable: On SDK failure, rate limiting or bad JSON
        """
        try:
            result = await _guarded_call(
                lambda: self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    response_format={"type": "json_object"},
                    temperature=0.2,
                    max_tokens=300,
                ),
                operation="intent",
                retry_policy=self.retry_policy,
                rate_limiter=self.rate_limiter,
            )
            raw = result.choices[0].message.content or "{}"
            return parse_llm_json_dict(raw)
        except Exception as e:
            raise ClassificationUnavailable(str(e)) from e


class AnthropicSummarizer:
    """Rolling conversation summaries through Claude Haiku."""

    def __init__(
        self,
        client: AsyncAnthropic,
        model: str,
        max_tokens: int = 200,
        retry_policy: RetryPolicy | None = None,
        rate_limiter: RateLimiter | None = None,
    ):
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.retry_policy = retry_policy or RetryPolicy()
        self.rate_limiter = rate_limiter

    async def summarize(self, system_prompt: str, transcript: str) -> str:
        """
        Summarize a transcript.

        Raises:
            SummarizationFailed: On SDK failure, rate limiting or empty output
        """
        try:
            response = await _guarded_call(
                lambda: self.client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    system=system_prompt,
                    messages=[
                        {"role": "user", "content": f"Summarize this conversation:\n\n{transcript}"}
                    ],
                    temperature=0.3,
                ),
                operation="summarization",
                retry_policy=self.retry_policy,
                rate_limiter=self.rate_limiter,
            )
        except Exception as e:
            raise SummarizationFailed(str(e)) from e

        summary = ""
        for block in response.content:
            if hasattr(block, "text"):
                summary += block.text

        summary = summary.strip()
        if not summary:
            raise SummarizationFailed("Summarizer returned no text")
        return summary


def build_retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_retries=settings.LLM_MAX_RETRIES,
        initial_delay=settings.LLM_INITIAL_RETRY_DELAY,
    )


def build_generator(settings: Settings, rate_limiter: RateLimiter | None = None) -> OpenAIGenerator:
    return OpenAIGenerator(
        client=AsyncOpenAI(api_key=settings.OPENAI_API_KEY),
        model=settings.CHAT_MODEL,
        temperature=settings.CHAT_TEMPERATURE,
        max_tokens=settings.MAX_RESPONSE_TOKENS,
        retry_policy=build_retry_policy(settings),
        rate_limiter=rate_limiter,
    )


def build_intent_analyzer(
    settings: Settings, rate_limiter: RateLimiter | None = None
) -> OpenAIIntentAnalyzer | None:
    """Intent analyzer, or None when no OpenAI key is configured."""
    if not settings.OPENAI_API_KEY:
        return None
    return OpenAIIntentAnalyzer(
        client=AsyncOpenAI(api_key=settings.OPENAI_API_KEY),
        model=settings.INTENT_MODEL,
        retry_policy=build_retry_policy(settings),
        rate_limiter=rate_limiter,
    )


def build_summarizer(
    settings: Settings, rate_limiter: RateLimiter | None = None
) -> AnthropicSummarizer | None:
    """Summarizer, or None when no Anthropic key is configured."""
    if not settings.ANTHROPIC_API_KEY:
        return None
    return AnthropicSummarizer(
        client=AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY),
        model=settings.SUMMARIZATION_MODEL,
        retry_policy=build_retry_policy(settings),
        rate_limiter=rate_limiter,
    )
