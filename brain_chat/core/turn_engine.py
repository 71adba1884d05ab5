"""Turn orchestration for brain conversations.

One turn: classify intent -> load cards by relevance -> persist the user
message -> generate -> extract citations -> fuse confidence -> persist the
assistant message and the new working set -> maybe compact history.

Turns on the same conversation are serialized with a per-conversation lock,
held from reading the message count until the working set is written, so
sequence numbers and active cards cannot interleave.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

from brain_chat.context.card_loader import load_cards_by_relevance
from brain_chat.context.citation_extractor import extract_citations
from brain_chat.context.confidence import fuse_confidence
from brain_chat.context.conversation_compressor import compact_conversation, should_compact
from brain_chat.context.intent_classifier import classify_intent
from brain_chat.context.prompt_builder import build_chat_messages, build_system_prompt
from brain_chat.context.token_budget import get_budget_manager
from brain_chat.context.working_set import (
    collect_recent_card_ids,
    high_relevance_ids,
    update_active_set,
)
from brain_chat.core.config import Settings
from brain_chat.core.errors import BrainNotFound, ConversationNotFound, GenerationFailed
from brain_chat.core.llm import IntentAnalyzer, Summarizer, TextGenerator
from brain_chat.core.logging import conversation_scope, get_logger, log_with_context
from brain_chat.core.schemas_cards import StoredMessage, TurnResult
from brain_chat.db.stores import CardCatalog, ConversationStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class EngineConfig:
    """Tunables for a turn."""

    excerpt_length: int = 500
    max_history_messages: int = 10
    decay_window: int = 10
    high_relevance: int = 80
    summary_threshold: int = 10
    summary_interval: int = 5
    summary_max_messages: int = 20

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineConfig":
        return cls(
            excerpt_length=settings.EXCERPT_LENGTH,
            max_history_messages=settings.MAX_HISTORY_MESSAGES,
            decay_window=settings.ACTIVE_CARDS_DECAY_MESSAGES,
            high_relevance=settings.HIGH_CARD_RELEVANCE,
            summary_threshold=settings.CONTEXT_SUMMARY_THRESHOLD,
            summary_interval=settings.CONTEXT_SUMMARY_INTERVAL,
            summary_max_messages=settings.CONTEXT_SUMMARY_MAX_MESSAGES,
        )


class ConversationEngine:
    """Runs chat turns against a card catalog and a conversation store."""

    def __init__(
        self,
        catalog: CardCatalog,
        store: ConversationStore,
        generator: TextGenerator,
        analyzer: IntentAnalyzer | None = None,
        summarizer: Summarizer | None = None,
        config: EngineConfig | None = None,
    ):
        self.catalog = catalog
        self.store = store
        self.generator = generator
        self.analyzer = analyzer
        self.summarizer = summarizer
        self.config = config or EngineConfig()
        # conversation id -> (lock, turns holding or waiting on it)
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def _conversation_lock(self, conversation_id: str):
        """Serialize turns on one conversation; the entry is dropped once unused."""
        lock, users = self._locks.get(conversation_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[conversation_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[conversation_id]
            if users <= 1:
                del self._locks[conversation_id]
            else:
                self._locks[conversation_id] = (lock, users - 1)

    async def process_turn(self, brain_id: str, conversation_id: str, content: str) -> TurnResult:
        """
        Run one user turn to completion.

        Args:
            brain_id: Business brain the conversation belongs to
            conversation_id: Conversation id
            content: User message text

        Returns:
            TurnResult with the assistant message, citations and new state

        Raises:
            ValueError: Empty message
            ConversationNotFound / BrainNotFound: Unknown ids
            GenerationFailed: No answer could be generated. The user message
                stays persisted; no assistant message is written.
        """
        content = (content or "").strip()
        if not content:
            raise ValueError("Message content is required.")

        if self.store.get_conversation(brain_id, conversation_id) is None:
            raise ConversationNotFound(f"Conversation {conversation_id} not found")

        with conversation_scope(brain_id, conversation_id):
            async with self._conversation_lock(conversation_id):
                return await self._run_turn(brain_id, conversation_id, content)

    async def _run_turn(self, brain_id: str, conversation_id: str, content: str) -> TurnResult:
        cfg = self.config

        conversation = self.store.get_conversation(brain_id, conversation_id)
        if conversation is None:
            raise ConversationNotFound(f"Conversation {conversation_id} not found")
        brain = self.catalog.get_brain(brain_id)
        if brain is None:
            raise BrainNotFound(f"Business brain {brain_id} not found")

        catalog = self.catalog.list_cards(brain_id)
        count_before = conversation.message_count

        intent = await classify_intent(content, catalog, self.analyzer)
        loaded_cards, relevance_map = load_cards_by_relevance(
            catalog, intent, excerpt_length=cfg.excerpt_length
        )

        history = self.store.list_recent_messages(conversation_id, limit=cfg.max_history_messages)
        system_prompt = build_system_prompt(
            brain, loaded_cards, conversation.context_summary, excerpt_length=cfg.excerpt_length
        )
        messages = build_chat_messages(system_prompt, history, content)

        log_with_context(
            logger,
            logging.INFO,
            "Turn context assembled",
            conversation_id=conversation_id,
            brain_id=brain_id,
            intent=intent.category.value,
            intent_confidence=intent.confidence,
            cards=len(loaded_cards),
            prompt_tokens_est=get_budget_manager().count_messages(messages),
        )

        # Sequence number is taken before generation is attempted
        user_message = self.store.insert_message(
            StoredMessage(
                conversation_id=conversation_id,
                role="user",
                content=content,
                sequence_number=count_before + 1,
                metadata={
                    "intent": intent.model_dump(mode="json"),
                    "card_relevance": relevance_map,
                },
            )
        )
        conversation = self.store.update_conversation(
            conversation_id, message_count=user_message.sequence_number
        )

        try:
            generation = await self.generator.generate(messages)
        except GenerationFailed:
            log_with_context(
                logger,
                logging.ERROR,
                "Generation failed; turn aborted without assistant message",
                conversation_id=conversation_id,
                sequence_number=user_message.sequence_number,
            )
            raise

        citations = extract_citations(generation.text, loaded_cards, catalog)
        confidence = fuse_confidence(citations, relevance_map, catalog, brain.has_knowledge_base)

        # Count moves past the assistant slot before it is written, so a failed
        # write leaves a gap rather than a sequence number the next turn reuses
        assistant_seq = user_message.sequence_number + 1
        self.store.update_conversation(conversation_id, message_count=assistant_seq)

        assistant_message = self.store.insert_message(
            StoredMessage(
                conversation_id=conversation_id,
                role="assistant",
                content=generation.text,
                sequence_number=assistant_seq,
                metadata={
                    "cards_referenced": [c.card_id for c in citations],
                    "confidence_score": confidence,
                    "model": generation.model,
                    "token_count": generation.total_tokens,
                    "prompt_tokens": generation.prompt_tokens,
                    "completion_tokens": generation.completion_tokens,
                },
                card_citations=citations,
            )
        )

        # Decay window includes the assistant message just written
        recent = self.store.list_recent_messages(conversation_id, limit=cfg.decay_window)
        active_card_ids = update_active_set(
            citations,
            conversation.active_card_ids,
            collect_recent_card_ids(recent, cfg.decay_window),
            high_relevance_ids(loaded_cards, cfg.high_relevance),
        )
        conversation = self.store.update_conversation(conversation_id, active_card_ids=active_card_ids)

        if should_compact(
            conversation.message_count,
            threshold=cfg.summary_threshold,
            interval=cfg.summary_interval,
            previous_count=count_before,
        ):
            summary = await compact_conversation(
                self.store,
                conversation,
                self.summarizer,
                max_messages=cfg.summary_max_messages,
            )
            if summary is not None:
                conversation = conversation.model_copy(update={"context_summary": summary})

        log_with_context(
            logger,
            logging.INFO,
            "Turn completed",
            conversation_id=conversation_id,
            citations=len(citations),
            confidence=confidence,
            active_cards=len(active_card_ids),
            message_count=conversation.message_count,
        )

        return TurnResult(
            user_message=user_message,
            assistant_message=assistant_message,
            citations=citations,
            confidence=confidence,
            intent=intent,
            loaded_cards=loaded_cards,
            relevance_map=relevance_map,
            conversation=conversation,
        )
