"""Database operations for business brains and their knowledge cards."""

from typing import Any

from supabase import Client

from brain_chat.core.logging import get_logger
from brain_chat.core.schemas_cards import BusinessBrain, Card
from brain_chat.db.supabase_client import get_supabase

logger = get_logger(__name__)


def _card_from_row(row: dict[str, Any]) -> Card:
    """Validate a card row; metadata problems degrade to absent fields."""
    return Card(
        id=str(row["id"]),
        type=row.get("type") or "",
        title=row.get("title") or "",
        description=row.get("description"),
        metadata=row.get("metadata"),
        priority=row.get("priority"),
        order_index=row.get("order_index") or 0,
    )


class SupabaseCardCatalog:
    """Card catalog backed by the business_brains and business_cards tables."""

    def __init__(self, supabase: Client | None = None):
        self._supabase = supabase

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            self._supabase = get_supabase()
        return self._supabase

    def get_brain(self, brain_id: str) -> BusinessBrain | None:
        response = (
            self.supabase.table("business_brains")
            .select("id, intake_data, knowledge_base")
            .eq("id", brain_id)
            .maybe_single()
            .execute()
        )
        # maybe_single() can hand back None instead of an empty response
        if response is None or not response.data:
            return None
        row = response.data
        return BusinessBrain(
            id=str(row["id"]),
            intake_data=row.get("intake_data") if isinstance(row.get("intake_data"), dict) else None,
            knowledge_base=row.get("knowledge_base") if isinstance(row.get("knowledge_base"), dict) else None,
        )

    def list_cards(self, brain_id: str) -> list[Card]:
        response = (
            self.supabase.table("business_cards")
            .select("*")
            .eq("brain_id", brain_id)
            .order("order_index")
            .execute()
        )
        rows = response.data or []

        cards = []
        for row in rows:
            try:
                cards.append(_card_from_row(row))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping unreadable card row for brain {brain_id}: {e}")
        return cards
