"""Database operations for business conversations and their messages."""

from datetime import datetime, timezone
from typing import Any

from supabase import Client

from brain_chat.core.logging import get_logger
from brain_chat.core.schemas_cards import ConversationState, StoredMessage
from brain_chat.db.supabase_client import get_supabase

logger = get_logger(__name__)

_UPDATABLE_FIELDS = {"message_count", "active_card_ids", "context_summary", "title"}


def _conversation_from_row(row: dict[str, Any]) -> ConversationState:
    return ConversationState(
        id=str(row["id"]),
        brain_id=str(row["brain_id"]),
        title=row.get("title") or "New Conversation",
        message_count=row.get("message_count") or 0,
        active_card_ids=row.get("active_card_ids") or [],
        context_summary=row.get("context_summary"),
        status=row.get("status") or "ACTIVE",
        last_message_at=row.get("last_message_at"),
    )


def _message_from_row(row: dict[str, Any]) -> StoredMessage:
    return StoredMessage(
        id=str(row["id"]) if row.get("id") else None,
        conversation_id=str(row["conversation_id"]),
        role=row["role"],
        content=row.get("content") or "",
        sequence_number=row["sequence_number"],
        metadata=row.get("metadata"),
        card_citations=row.get("card_citations"),
    )


class SupabaseConversationStore:
    """Conversation store backed by business_conversations and business_messages."""

    def __init__(self, supabase: Client | None = None):
        self._supabase = supabase

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            self._supabase = get_supabase()
        return self._supabase

    def create_conversation(self, brain_id: str, title: str = "New Conversation") -> ConversationState:
        response = (
            self.supabase.table("business_conversations")
            .insert({
                "brain_id": brain_id,
                "title": title,
                "message_count": 0,
                "active_card_ids": [],
                "status": "ACTIVE",
                "last_message_at": datetime.now(timezone.utc).isoformat(),
            })
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create conversation")
        return _conversation_from_row(response.data[0])

    def get_conversation(self, brain_id: str, conversation_id: str) -> ConversationState | None:
        response = (
            self.supabase.table("business_conversations")
            .select("*")
            .eq("id", conversation_id)
            .eq("brain_id", brain_id)
            .maybe_single()
            .execute()
        )
        if response is None or not response.data:
            return None
        return _conversation_from_row(response.data)

    def list_conversations(self, brain_id: str, limit: int = 50) -> list[ConversationState]:
        """Most recently active conversations of a brain."""
        response = (
            self.supabase.table("business_conversations")
            .select("*")
            .eq("brain_id", brain_id)
            .order("last_message_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [_conversation_from_row(row) for row in response.data or []]

    def list_recent_messages(self, conversation_id: str, limit: int) -> list[StoredMessage]:
        if limit <= 0:
            return []
        response = (
            self.supabase.table("business_messages")
            .select("*")
            .eq("conversation_id", conversation_id)
            .order("sequence_number", desc=True)
            .limit(limit)
            .execute()
        )
        rows = response.data or []
        return [_message_from_row(row) for row in reversed(rows)]

    def insert_message(self, message: StoredMessage) -> StoredMessage:
        payload = message.model_dump(mode="json", exclude={"id"})
        response = self.supabase.table("business_messages").insert(payload).execute()
        if not response.data:
            raise RuntimeError(
                f"Failed to insert message {message.sequence_number} "
                f"for conversation {message.conversation_id}"
            )
        return _message_from_row(response.data[0])

    def update_conversation(self, conversation_id: str, **fields: Any) -> ConversationState:
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update conversation fields: {sorted(unknown)}")

        payload = dict(fields)
        if "message_count" in fields:
            payload["last_message_at"] = datetime.now(timezone.utc).isoformat()

        response = (
            self.supabase.table("business_conversations")
            .update(payload)
            .eq("id", conversation_id)
            .execute()
        )
        if not response.data:
            raise RuntimeError(f"Failed to update conversation {conversation_id}")
        return _conversation_from_row(response.data[0])
