"""Tests for active-card working set maintenance."""

from brain_chat.context.working_set import (
    collect_recent_card_ids,
    high_relevance_ids,
    update_active_set,
)
from brain_chat.core.schemas_cards import CardTier, Citation, LoadedCard, StoredMessage


def _cite(card_id):
    return Citation(card_id=card_id, card_type="T", excerpts=[], confidence=30)


def _message(seq, cited=(), role="assistant"):
    return StoredMessage(
        conversation_id="conv-1",
        role=role,
        content=f"message {seq}",
        sequence_number=seq,
        card_citations=[_cite(c) for c in cited],
    )


def _loaded(card_id, relevance):
    return LoadedCard(
        card_id=card_id, type="T", title=card_id, relevance=relevance,
        tier=CardTier.TITLE_ONLY, content=card_id,
    )


def test_union_order_and_eviction():
    result = update_active_set(
        current_citations=[_cite("B"), _cite("C")],
        previous_active_set=["A", "X", "C"],
        recent_citation_sets=[{"A"}, set(), {"C"}],
        high_relevance_loaded_ids=["D", "B"],
    )
    # cited now, then retained-by-recency, then high relevance; X evicted
    assert result == ["B", "C", "A", "D"]


def test_accepts_card_ids_for_citations():
    assert update_active_set(["A"], [], [], []) == ["A"]


def test_previous_card_without_recent_use_is_evicted():
    assert update_active_set([], ["A", "B"], [{"B"}], []) == ["B"]


def test_empty_inputs_give_empty_set():
    assert update_active_set([], [], [], []) == []


def test_recent_ids_only_retain_previously_active_cards():
    # Z was cited recently but was never active, so it is not added
    assert update_active_set([], ["A"], [{"A", "Z"}], []) == ["A"]


def test_collect_recent_card_ids_is_newest_first_and_windowed():
    messages = [
        _message(1, ["old"]),
        _message(2, role="user"),
        _message(3, ["A"]),
        _message(4, role="user"),
        _message(5, ["B", "C"]),
    ]

    assert collect_recent_card_ids(messages, window=3) == [{"B", "C"}, set(), {"A"}]
    assert collect_recent_card_ids(messages, window=0) == []


def test_window_counts_raw_messages_of_both_roles():
    messages = [_message(1, ["A"])] + [_message(i, role="user") for i in range(2, 12)]
    recent = collect_recent_card_ids(messages, window=10)

    assert len(recent) == 10
    assert all(ids == set() for ids in recent)


def test_high_relevance_ids_threshold_is_inclusive():
    loaded = [_loaded("A", 80), _loaded("B", 79), _loaded("C", 100)]
    assert high_relevance_ids(loaded, threshold=80) == ["A", "C"]
