"""FastAPI dependency providers for the conversation engine."""

from functools import lru_cache

from brain_chat.core.config import get_settings
from brain_chat.core.llm import build_generator, build_intent_analyzer, build_summarizer
from brain_chat.core.rate_limiter import RateLimiter
from brain_chat.core.turn_engine import ConversationEngine, EngineConfig
from brain_chat.db.cards import SupabaseCardCatalog
from brain_chat.db.conversations import SupabaseConversationStore
from brain_chat.db.stores import CardCatalog, ConversationStore


@lru_cache(maxsize=1)
def get_chat_rate_limiter() -> RateLimiter:
    """Per-process limiter for chat turns, keyed by brain."""
    settings = get_settings()
    return RateLimiter(
        requests_per_minute=settings.CHAT_RATE_LIMIT_PER_MINUTE,
        burst_size=settings.CHAT_RATE_LIMIT_BURST,
    )


@lru_cache(maxsize=1)
def get_llm_rate_limiter() -> RateLimiter:
    """Per-process limiter shared by the LLM collaborators, keyed by operation."""
    return RateLimiter(requests_per_minute=120, burst_size=60)


@lru_cache(maxsize=1)
def get_card_catalog() -> CardCatalog:
    return SupabaseCardCatalog()


@lru_cache(maxsize=1)
def get_conversation_store() -> ConversationStore:
    return SupabaseConversationStore()


@lru_cache(maxsize=1)
def get_engine() -> ConversationEngine:
    """Engine wired to Supabase and the configured LLM collaborators."""
    settings = get_settings()
    llm_limiter = get_llm_rate_limiter()
    return ConversationEngine(
        catalog=get_card_catalog(),
        store=get_conversation_store(),
        generator=build_generator(settings, llm_limiter),
        analyzer=build_intent_analyzer(settings, llm_limiter),
        summarizer=build_summarizer(settings, llm_limiter),
        config=EngineConfig.from_settings(settings),
    )
