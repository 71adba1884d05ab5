"""Context management for knowledge-card conversations.

This module provides:
- Intent classification with a keyword fallback
- Relevance scoring and tiered card loading
- Heuristic citation extraction and confidence fusion
- Active-card working set maintenance
- Periodic conversation compaction
"""

from brain_chat.context.card_loader import load_cards_by_relevance, score_card_relevance
from brain_chat.context.citation_extractor import extract_citations
from brain_chat.context.confidence import fuse_confidence
from brain_chat.context.conversation_compressor import should_compact
from brain_chat.context.intent_classifier import classify_intent
from brain_chat.context.working_set import update_active_set

__all__ = [
    "classify_intent",
    "extract_citations",
    "fuse_confidence",
    "load_cards_by_relevance",
    "score_card_relevance",
    "should_compact",
    "update_active_set",
]
