"""Heuristic card-citation extraction from generated answers.

This is a textual heuristic, not proof that an answer is grounded in a card.
Strength per loaded card:

- +30 when the card title, its type with underscores as spaces, or its raw
  type appears in the answer (case-insensitive, first match wins). A window
  of 50 characters each side of the match becomes the excerpt.
- Full-tier cards only:
  - +20 when the card declares forbidden words and the answer avoids a
    strict majority of them.
  - +10 when the card content talks about voice or style and the answer
    addresses the reader directly ("you", "your").

A card is cited once strength reaches 30.

Known failure modes:
- False positives: short or generic titles ("Offer", "Style Rules") match
  incidental wording; answers that merely echo the prompt's card headings
  count as citations.
- False negatives: a card used by paraphrase, without naming it, is cited
  only when both full-tier bonuses fire (20 + 10), which needs a full-tier
  voice card that declares forbidden words.
- The forbidden-word check is substring based, so "free" is found inside
  "freedom".
"""

import re
from typing import Sequence

from brain_chat.core.schemas_cards import Card, CardTier, Citation, LoadedCard

NAME_MATCH_STRENGTH = 30
FORBIDDEN_AVOIDED_STRENGTH = 20
DIRECT_ADDRESS_STRENGTH = 10
CITATION_FLOOR = 30
EXCERPT_WINDOW = 50

_VOICE_MARKERS = ("voice", "style")
_DIRECT_ADDRESS = re.compile(r"\b(you|your|yours|you're)\b", re.IGNORECASE)


def _name_patterns(loaded: LoadedCard) -> list[str]:
    patterns = [
        loaded.title.lower(),
        loaded.type.lower().replace("_", " "),
        loaded.type.lower(),
    ]
    return [p for p in patterns if p.strip()]


def find_name_mention(response: str, loaded: LoadedCard) -> str | None:
    """Excerpt around the first card-name pattern found in the response."""
    response_lower = response.lower()
    for pattern in _name_patterns(loaded):
        index = response_lower.find(pattern)
        if index == -1:
            continue
        start = max(0, index - EXCERPT_WINDOW)
        end = min(len(response), index + len(pattern) + EXCERPT_WINDOW)
        return response[start:end].strip()
    return None


def avoids_forbidden_majority(response: str, forbidden_words: Sequence[str]) -> bool:
    """True when a strict majority of the forbidden words are absent."""
    words = [w.lower() for w in forbidden_words if w]
    if not words:
        return False
    response_lower = response.lower()
    avoided = sum(1 for w in words if w not in response_lower)
    return avoided * 2 > len(words)


def mentions_voice_guidance(content: str) -> bool:
    content_lower = content.lower()
    return any(marker in content_lower for marker in _VOICE_MARKERS)


def uses_direct_address(response: str) -> bool:
    return _DIRECT_ADDRESS.search(response) is not None


def build_citation(
    card: Card,
    strength: int,
    excerpts: list[str],
) -> Citation | None:
    """Citation for an accumulated strength, or None below the floor."""
    if strength < CITATION_FLOOR:
        return None
    return Citation(
        card_id=card.id,
        card_type=card.type,
        excerpts=excerpts or [card.title],
        confidence=min(strength, 100),
    )


def _resolve_card(loaded: LoadedCard, cards_by_id: dict[str, Card], catalog: Sequence[Card]) -> Card | None:
    card = cards_by_id.get(loaded.card_id)
    if card is not None:
        return card
    # Loaded cards built elsewhere may carry a stale id; match on type + title
    for candidate in catalog:
        if candidate.type == loaded.type and candidate.title == loaded.title:
            return candidate
    return None


def extract_citations(
    response_text: str,
    loaded_cards: Sequence[LoadedCard],
    catalog: Sequence[Card],
) -> list[Citation]:
    """
    Determine which loaded cards the answer cited.

    Args:
        response_text: Generated answer
        loaded_cards: Cards presented to the model this turn
        catalog: Full catalog, used to resolve card ids and metadata

    Returns:
        Citations in loaded-card order
    """
    cards_by_id = {card.id: card for card in catalog}
    citations: list[Citation] = []

    for loaded in loaded_cards:
        card = _resolve_card(loaded, cards_by_id, catalog)
        if card is None:
            continue

        strength = 0
        excerpts: list[str] = []

        excerpt = find_name_mention(response_text, loaded)
        if excerpt is not None:
            strength += NAME_MATCH_STRENGTH
            excerpts.append(excerpt)

        if loaded.tier == CardTier.FULL:
            forbidden = card.metadata.forbidden_words if card.metadata else []
            if avoids_forbidden_majority(response_text, forbidden):
                strength += FORBIDDEN_AVOIDED_STRENGTH

            if mentions_voice_guidance(loaded.content) and uses_direct_address(response_text):
                strength += DIRECT_ADDRESS_STRENGTH

        citation = build_citation(card, strength, excerpts)
        if citation is not None:
            citations.append(citation)

    return citations
