"""Relevance scoring and tiered card loading.

Relevance rules (0-100):
- card id in the intent's relevant ids: min(80 + confidence / 5, 100)
- card type mapped to the intent category: 40 + confidence / 2
- anything else: 20

Tiers:
- >= 80: full description + metadata + priority
- 40-79: first 500 characters of description only
- < 40: title only

Every catalog card is loaded, low-relevance ones just minimized, so the
prompt always shows the full catalog.
"""

import json
import math
from typing import Sequence

from brain_chat.core.schemas_cards import (
    CATEGORY_CARD_TYPES,
    Card,
    CardTier,
    Intent,
    LoadedCard,
)

FULL_TIER_MIN = 80
EXCERPT_TIER_MIN = 40
LOW_RELEVANCE = 20
EXCERPT_LENGTH = 500
ELLIPSIS = "..."


def round_score(value: float) -> int:
    """Round half up, so 92.5 -> 93."""
    return int(math.floor(value + 0.5))


def score_card(card: Card, intent: Intent) -> int:
    """Relevance of one card for the intent."""
    if card.id in intent.relevant_card_ids:
        relevance = min(80 + intent.confidence / 5, 100)
    elif card.type in CATEGORY_CARD_TYPES.get(intent.category, []):
        relevance = 40 + intent.confidence / 2
    else:
        relevance = LOW_RELEVANCE
    return max(0, min(100, round_score(relevance)))


def score_card_relevance(intent: Intent, catalog: Sequence[Card]) -> dict[str, int]:
    """Relevance for every card, keyed by card id."""
    return {card.id: score_card(card, intent) for card in catalog}


def select_tier(relevance: int) -> CardTier:
    if relevance >= FULL_TIER_MIN:
        return CardTier.FULL
    if relevance >= EXCERPT_TIER_MIN:
        return CardTier.EXCERPT
    return CardTier.TITLE_ONLY


def truncate_description(description: str, limit: int = EXCERPT_LENGTH) -> str:
    """First ``limit`` characters, with an ellipsis only if something was cut."""
    if len(description) > limit:
        return description[:limit] + ELLIPSIS
    return description


def render_card_content(card: Card, tier: CardTier, excerpt_length: int = EXCERPT_LENGTH) -> str:
    """Card content at the given fidelity."""
    if tier == CardTier.FULL:
        content = card.description
        if card.metadata is not None:
            content += "\n\nMetadata:\n" + json.dumps(card.metadata.raw, indent=2, default=str)
        if card.priority:
            content += f"\n\nPriority: {card.priority}"
        return content

    if tier == CardTier.EXCERPT:
        return truncate_description(card.description, excerpt_length)

    return card.title


def load_cards_by_relevance(
    catalog: Sequence[Card],
    intent: Intent,
    excerpt_length: int = EXCERPT_LENGTH,
) -> tuple[list[LoadedCard], dict[str, int]]:
    """
    Score and render every card in the catalog.

    Args:
        catalog: Cards ordered by order_index
        intent: This turn's intent
        excerpt_length: Characters kept for excerpt-tier cards

    Returns:
        Tuple of (loaded cards in catalog order, relevance by card id)
    """
    relevance_map = score_card_relevance(intent, catalog)

    loaded_cards = []
    for card in catalog:
        relevance = relevance_map[card.id]
        tier = select_tier(relevance)
        loaded_cards.append(
            LoadedCard(
                card_id=card.id,
                type=card.type,
                title=card.title,
                relevance=relevance,
                tier=tier,
                content=render_card_content(card, tier, excerpt_length),
            )
        )

    return loaded_cards, relevance_map
