"""Answer confidence from citation signals.

Per citation: card_confidence * 0.5 + relevance * 0.3 + citation_strength * 0.2,
averaged across citations. Without citations a fixed baseline applies, higher
when the brain has a synthesized knowledge base, since answers can still be
grounded in it without tripping the citation heuristics.
"""

from typing import Mapping, Sequence

from brain_chat.context.card_loader import round_score
from brain_chat.core.schemas_cards import DEFAULT_CARD_CONFIDENCE, Card, Citation

BASELINE_WITH_KNOWLEDGE_BASE = 65
BASELINE_WITHOUT_KNOWLEDGE_BASE = 50
DEFAULT_RELEVANCE = 50

SOURCE_WEIGHT = 0.5
RELEVANCE_WEIGHT = 0.3
EVIDENCE_WEIGHT = 0.2


def fuse_confidence(
    citations: Sequence[Citation],
    relevance_map: Mapping[str, int],
    catalog: Sequence[Card],
    has_knowledge_base: bool,
) -> int:
    """
    Overall answer confidence, 0-100.

    Args:
        citations: This turn's citations
        relevance_map: This turn's relevance by card id
        catalog: Cards, for their declared confidence
        has_knowledge_base: Whether the brain has a knowledge base

    Returns:
        Rounded confidence
    """
    if not citations:
        return BASELINE_WITH_KNOWLEDGE_BASE if has_knowledge_base else BASELINE_WITHOUT_KNOWLEDGE_BASE

    cards_by_id = {card.id: card for card in catalog}

    total = 0.0
    for citation in citations:
        card = cards_by_id.get(citation.card_id)
        card_confidence = card.declared_confidence if card else DEFAULT_CARD_CONFIDENCE
        relevance = relevance_map.get(citation.card_id) or DEFAULT_RELEVANCE

        total += (
            card_confidence * SOURCE_WEIGHT
            + relevance * RELEVANCE_WEIGHT
            + citation.confidence * EVIDENCE_WEIGHT
        )

    return round_score(total / len(citations))
