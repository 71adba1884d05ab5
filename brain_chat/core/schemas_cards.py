"""Pydantic schemas for knowledge cards, intents, citations and conversation state."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from brain_chat.core.errors import MalformedCardMetadata
from brain_chat.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CARD_CONFIDENCE = 70

# Metadata keys that card generators have used for the forbidden-word list
FORBIDDEN_WORD_KEYS = ("forbidden_words", "forbidden", "never_use")


class CardType(str, Enum):
    """Card types produced by the card generators."""

    BRAND_VOICE_CARD = "BRAND_VOICE_CARD"
    STYLE_RULES = "STYLE_RULES"
    POSITIONING_CARD = "POSITIONING_CARD"
    COMPLIANCE_RULES = "COMPLIANCE_RULES"
    GHL_IMPLEMENTATION_NOTES = "GHL_IMPLEMENTATION_NOTES"


class IntentCategory(str, Enum):
    """Topic categories, in tie-break order for keyword classification."""

    CONTENT_GENERATION = "content_generation"
    BUSINESS_INFO = "business_info"
    COMPLIANCE = "compliance"
    TECHNICAL_SETUP = "technical_setup"
    GENERAL = "general"


# Category -> card types that are topically relevant to it
CATEGORY_CARD_TYPES: dict[IntentCategory, list[str]] = {
    IntentCategory.CONTENT_GENERATION: [CardType.BRAND_VOICE_CARD.value, CardType.STYLE_RULES.value],
    IntentCategory.BUSINESS_INFO: [CardType.POSITIONING_CARD.value],
    IntentCategory.COMPLIANCE: [CardType.COMPLIANCE_RULES.value],
    IntentCategory.TECHNICAL_SETUP: [CardType.GHL_IMPLEMENTATION_NOTES.value],
    IntentCategory.GENERAL: [],
}


class CardTier(str, Enum):
    """Fidelity at which a card is rendered into the prompt."""

    FULL = "full"
    EXCERPT = "excerpt"
    TITLE_ONLY = "title_only"


class CardMetadata(BaseModel):
    """
    Typed view over a card's metadata blob.

    Only the fields the engine reads are typed. ``raw`` keeps the original
    mapping so full-tier rendering shows the model everything the card
    generator wrote.

    Defaults:
    - confidence_score: None (fusion falls back to 70)
    - forbidden_words: [] (forbidden-word heuristic does not apply)
    """

    confidence_score: int | None = Field(default=None, ge=0, le=100)
    forbidden_words: list[str] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_raw(cls, value: Any, card_id: str | None = None) -> "CardMetadata | None":
        """Validate a metadata blob, treating wrong-shaped fields as absent."""
        if value is None:
            return None
        if not isinstance(value, dict):
            logger.warning(
                f"Card {card_id} metadata is {type(value).__name__}, not an object; ignoring it"
            )
            return None

        try:
            confidence = _confidence_field(value)
        except MalformedCardMetadata as e:
            logger.warning(f"Card {card_id}: {e}; using default")
            confidence = None

        forbidden: list[str] = []
        for key in FORBIDDEN_WORD_KEYS:
            if value.get(key) is None:
                continue
            try:
                forbidden = _word_list_field(value, key)
            except MalformedCardMetadata as e:
                logger.warning(f"Card {card_id}: {e}; ignoring it")
                continue
            break

        return cls(confidence_score=confidence, forbidden_words=forbidden, raw=value)


def _confidence_field(metadata: dict[str, Any]) -> int | None:
    """confidence_score clamped to 0-100, None when absent."""
    confidence = metadata.get("confidence_score")
    if confidence is None:
        return None
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise MalformedCardMetadata("confidence_score is not numeric")
    return int(max(0, min(100, round(confidence))))


def _word_list_field(metadata: dict[str, Any], key: str) -> list[str]:
    words = metadata[key]
    if not isinstance(words, list):
        raise MalformedCardMetadata(f"metadata '{key}' is not a list")
    return [w.strip() for w in words if isinstance(w, str) and w.strip()]


class Card(BaseModel):
    """A knowledge card from a business brain's catalog. Read-only to the engine."""

    id: str
    type: str
    title: str
    description: str = ""
    metadata: CardMetadata | None = None
    priority: int | None = None
    order_index: int = 0

    @field_validator("metadata", mode="before")
    @classmethod
    def _coerce_metadata(cls, value: Any, info) -> Any:
        if value is None or isinstance(value, CardMetadata):
            return value
        return CardMetadata.from_raw(value, card_id=info.data.get("id"))

    @field_validator("priority", mode="before")
    @classmethod
    def _coerce_priority(cls, value: Any) -> int | None:
        if isinstance(value, bool) or not isinstance(value, int):
            return None
        return value

    @field_validator("description", mode="before")
    @classmethod
    def _coerce_description(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @property
    def declared_confidence(self) -> int:
        """Source-trust score from metadata; absent or zero means the default."""
        if self.metadata and self.metadata.confidence_score:
            return self.metadata.confidence_score
        return DEFAULT_CARD_CONFIDENCE


class BusinessBrain(BaseModel):
    """The business a conversation is grounded in."""

    id: str
    intake_data: dict[str, Any] | None = None
    knowledge_base: dict[str, Any] | None = None

    @property
    def has_knowledge_base(self) -> bool:
        return bool(self.knowledge_base)

    @property
    def business_name(self) -> str:
        overview = (self.knowledge_base or {}).get("businessOverview") or {}
        intake = self.intake_data or {}
        if not isinstance(overview, dict):
            overview = {}
        return (
            overview.get("name")
            or overview.get("publicName")
            or intake.get("businessName")
            or intake.get("companyName")
            or "this business"
        )


class Intent(BaseModel):
    """Result of intent classification for one turn. Never persisted by the engine."""

    category: IntentCategory = IntentCategory.GENERAL
    relevant_card_ids: list[str] = Field(default_factory=list)
    confidence: int = Field(default=50, ge=0, le=100)
    reasoning: str = ""


class LoadedCard(BaseModel):
    """A card rendered at the tier its relevance selected."""

    card_id: str
    type: str
    title: str
    relevance: int = Field(..., ge=0, le=100)
    tier: CardTier
    content: str


class Citation(BaseModel):
    """Heuristic evidence that a card influenced the generated answer."""

    card_id: str
    card_type: str
    excerpts: list[str] = Field(default_factory=list)
    confidence: int = Field(..., ge=0, le=100)


class StoredMessage(BaseModel):
    """A persisted conversation message."""

    id: str | None = None
    conversation_id: str
    role: Literal["user", "assistant"]
    content: str
    sequence_number: int
    metadata: dict[str, Any] = Field(default_factory=dict)
    card_citations: list[Citation] = Field(default_factory=list)

    @field_validator("metadata", mode="before")
    @classmethod
    def _coerce_metadata(cls, value: Any) -> dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @field_validator("card_citations", mode="before")
    @classmethod
    def _coerce_citations(cls, value: Any) -> list[Any]:
        # Stored citation blobs are JSON; drop entries without a card id
        if not isinstance(value, list):
            return []
        return [
            c for c in value
            if isinstance(c, Citation) or (isinstance(c, dict) and c.get("card_id"))
        ]


class ConversationState(BaseModel):
    """Per-conversation working state advanced by each turn."""

    id: str
    brain_id: str
    title: str = "New Conversation"
    message_count: int = 0
    active_card_ids: list[str] = Field(default_factory=list)
    context_summary: str | None = None
    status: str = "ACTIVE"
    last_message_at: datetime | None = None

    @field_validator("active_card_ids", mode="before")
    @classmethod
    def _coerce_active_ids(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            return []
        return list(dict.fromkeys(v for v in value if isinstance(v, str)))


class GenerationResult(BaseModel):
    """Text and usage returned by the generation collaborator."""

    text: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class TurnResult(BaseModel):
    """Everything a completed turn produced."""

    user_message: StoredMessage
    assistant_message: StoredMessage
    citations: list[Citation]
    confidence: int
    intent: Intent
    loaded_cards: list[LoadedCard]
    relevance_map: dict[str, int]
    conversation: ConversationState
