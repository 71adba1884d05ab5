"""Fake in-memory catalog, conversation store and LLM collaborators for engine tests."""

from datetime import datetime, timezone
from typing import Any, Dict, List

from brain_chat.core.errors import ClassificationUnavailable, GenerationFailed, SummarizationFailed
from brain_chat.core.schemas_cards import (
    BusinessBrain,
    Card,
    ConversationState,
    GenerationResult,
    StoredMessage,
)


class FakeCatalog:
    """In-memory CardCatalog."""

    def __init__(self, brains: Dict[str, BusinessBrain], cards: Dict[str, List[Card]]):
        self.brains = brains
        self.cards = cards

    def get_brain(self, brain_id: str) -> BusinessBrain | None:
        return self.brains.get(brain_id)

    def list_cards(self, brain_id: str) -> List[Card]:
        return sorted(self.cards.get(brain_id, []), key=lambda c: c.order_index)


class FakeConversationStore:
    """In-memory ConversationStore enforcing unique sequence numbers."""

    def __init__(self):
        self.conversations: Dict[str, ConversationState] = {}
        self.messages: Dict[str, List[StoredMessage]] = {}
        self._next_id = 0

    def _new_id(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}-{self._next_id}"

    def add_conversation(self, brain_id: str, conversation_id: str, **fields: Any) -> ConversationState:
        conversation = ConversationState(id=conversation_id, brain_id=brain_id, **fields)
        self.conversations[conversation_id] = conversation
        self.messages.setdefault(conversation_id, [])
        return conversation

    def create_conversation(self, brain_id: str, title: str = "New Conversation") -> ConversationState:
        return self.add_conversation(
            brain_id, self._new_id("conv"), title=title, last_message_at=datetime.now(timezone.utc)
        )

    def get_conversation(self, brain_id: str, conversation_id: str) -> ConversationState | None:
        conversation = self.conversations.get(conversation_id)
        if conversation is None or conversation.brain_id != brain_id:
            return None
        return conversation

    def list_conversations(self, brain_id: str, limit: int = 50) -> List[ConversationState]:
        owned = [c for c in self.conversations.values() if c.brain_id == brain_id]
        oldest = datetime.min.replace(tzinfo=timezone.utc)
        owned.sort(key=lambda c: c.last_message_at or oldest, reverse=True)
        return owned[:limit]

    def list_recent_messages(self, conversation_id: str, limit: int) -> List[StoredMessage]:
        if limit <= 0:
            return []
        ordered = sorted(self.messages.get(conversation_id, []), key=lambda m: m.sequence_number)
        return ordered[-limit:]

    def insert_message(self, message: StoredMessage) -> StoredMessage:
        existing = self.messages.setdefault(message.conversation_id, [])
        if any(m.sequence_number == message.sequence_number for m in existing):
            raise ValueError(f"Duplicate sequence number {message.sequence_number}")
        stored = message.model_copy(update={"id": self._new_id("msg")})
        existing.append(stored)
        return stored

    def update_conversation(self, conversation_id: str, **fields: Any) -> ConversationState:
        if "message_count" in fields:
            fields.setdefault("last_message_at", datetime.now(timezone.utc))
        updated = self.conversations[conversation_id].model_copy(update=fields)
        self.conversations[conversation_id] = updated
        return updated


class FakeGenerator:
    """TextGenerator returning scripted answers in order."""

    def __init__(self, responses: List[str] | None = None, fail: bool = False):
        self.responses = list(responses or ["Here is a general answer."])
        self.fail = fail
        self.calls: List[List[Dict[str, str]]] = []

    async def generate(self, messages: List[Dict[str, str]]) -> GenerationResult:
        self.calls.append(messages)
        if self.fail:
            raise GenerationFailed("model unavailable")
        text = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return GenerationResult(
            text=text, model="fake-model", prompt_tokens=100, completion_tokens=20, total_tokens=120
        )


class FakeAnalyzer:
    """IntentAnalyzer returning a fixed analysis, or failing."""

    def __init__(self, analysis: Dict[str, Any] | None = None, fail: bool = False):
        self.analysis = analysis or {}
        self.fail = fail
        self.calls = 0

    async def analyze(self, system_prompt: str, user_prompt: str) -> Dict[str, Any]:
        self.calls += 1
        if self.fail:
            raise ClassificationUnavailable("intent model down")
        return self.analysis


class FakeSummarizer:
    """Summarizer returning a numbered summary, or failing."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.transcripts: List[str] = []

    async def summarize(self, system_prompt: str, transcript: str) -> str:
        self.transcripts.append(transcript)
        if self.fail:
            raise SummarizationFailed("summarizer down")
        return f"Summary #{len(self.transcripts)}"
