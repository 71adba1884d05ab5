"""Active-card working set maintenance.

After each turn the conversation's active cards become the ordered,
duplicate-free union of:

1. cards cited in this turn's answer
2. previously active cards cited somewhere in the last W messages
3. this turn's loaded cards with relevance >= H

Everything else is evicted. Recency and strength are separate signals, so a
card survives either by being used recently or by scoring high right now.
"""

from typing import Iterable, Sequence

from brain_chat.core.schemas_cards import Citation, LoadedCard, StoredMessage

DEFAULT_DECAY_WINDOW = 10
DEFAULT_HIGH_RELEVANCE = 80


def _ordered_unique(ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(ids))


def collect_recent_card_ids(
    messages: Sequence[StoredMessage],
    window: int = DEFAULT_DECAY_WINDOW,
) -> list[set[str]]:
    """
    Citation id sets of the last ``window`` messages.

    ``window`` counts raw messages of either role, newest first by
    sequence number. Messages without citations contribute empty sets.
    """
    if window <= 0:
        return []
    newest_first = sorted(messages, key=lambda m: m.sequence_number, reverse=True)
    return [{c.card_id for c in m.card_citations} for m in newest_first[:window]]


def high_relevance_ids(
    loaded_cards: Sequence[LoadedCard],
    threshold: int = DEFAULT_HIGH_RELEVANCE,
) -> list[str]:
    return [card.card_id for card in loaded_cards if card.relevance >= threshold]


def update_active_set(
    current_citations: Sequence[Citation | str],
    previous_active_set: Sequence[str],
    recent_citation_sets: Iterable[Iterable[str]],
    high_relevance_loaded_ids: Sequence[str],
) -> list[str]:
    """
    Compute the new active card list.

    Args:
        current_citations: This turn's citations (or their card ids)
        previous_active_set: Active ids before this turn
        recent_citation_sets: Card ids cited per recent message
        high_relevance_loaded_ids: Loaded ids at or above the high-relevance bar

    Returns:
        Ordered, duplicate-free active ids
    """
    cited_now = [c.card_id if isinstance(c, Citation) else c for c in current_citations]

    recently_used: set[str] = set()
    for ids in recent_citation_sets:
        recently_used.update(ids)

    retained_recent = [card_id for card_id in previous_active_set if card_id in recently_used]

    return _ordered_unique([*cited_now, *retained_recent, *high_relevance_loaded_ids])
