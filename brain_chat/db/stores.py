"""Persistence interfaces the conversation engine depends on."""

from typing import Any, Protocol

from brain_chat.core.schemas_cards import BusinessBrain, Card, ConversationState, StoredMessage


class CardCatalog(Protocol):
    """Read access to business brains and their knowledge cards."""

    def get_brain(self, brain_id: str) -> BusinessBrain | None: ...

    def list_cards(self, brain_id: str) -> list[Card]:
        """Cards of the brain, ordered by order_index."""
        ...


class ConversationStore(Protocol):
    """Conversation state and append-only message history."""

    def create_conversation(self, brain_id: str, title: str = "New Conversation") -> ConversationState: ...

    def get_conversation(self, brain_id: str, conversation_id: str) -> ConversationState | None: ...

    def list_conversations(self, brain_id: str, limit: int = 50) -> list[ConversationState]:
        """Conversations of the brain, most recent activity first."""
        ...

    def list_recent_messages(self, conversation_id: str, limit: int) -> list[StoredMessage]:
        """Last ``limit`` messages, returned oldest first."""
        ...

    def insert_message(self, message: StoredMessage) -> StoredMessage: ...

    def update_conversation(self, conversation_id: str, **fields: Any) -> ConversationState:
        """Set message_count, active_card_ids and/or context_summary.

        Changing message_count also stamps last_message_at.
        """
        ...
