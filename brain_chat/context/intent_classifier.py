"""Intent classification for chat turns.

An LLM analyzer proposes a category and relevant card types. Whenever it is
missing or fails, deterministic keyword matching takes over, so
classification never blocks a turn.
"""

from typing import Any, Sequence

from brain_chat.core.errors import ClassificationUnavailable
from brain_chat.core.llm import IntentAnalyzer
from brain_chat.core.logging import get_logger
from brain_chat.core.schemas_cards import (
    CATEGORY_CARD_TYPES,
    Card,
    Intent,
    IntentCategory,
)

logger = get_logger(__name__)


# Keyword patterns per category. Declaration order is the tie-break order.
KEYWORD_PATTERNS: dict[IntentCategory, list[str]] = {
    IntentCategory.CONTENT_GENERATION: [
        "write", "create", "generate", "content", "email", "post", "article",
        "copy", "tone", "voice", "style", "brand voice", "sounds like",
        "how to write", "draft", "compose", "messaging", "copywriting",
    ],
    IntentCategory.BUSINESS_INFO: [
        "target", "audience", "customer", "positioning", "competitor",
        "differentiation", "value proposition", "who is", "what is", "why",
        "market", "strategy", "icp", "ideal customer", "offer", "pricing",
    ],
    IntentCategory.COMPLIANCE: [
        "compliance", "legal", "disclaimer", "forbidden", "claim", "regulation",
        "risk", "liability", "terms", "legal terms", "can i say", "allowed to",
    ],
    IntentCategory.TECHNICAL_SETUP: [
        "ghl", "go high level", "crm", "pipeline", "workflow", "automation",
        "template", "setup", "configure", "integration", "technical",
    ],
}

DEFAULT_ANALYZER_CONFIDENCE = 70

# ruff: noqa: E501
INTENT_SYSTEM_PROMPT = """You are an intent classifier for a business AI assistant. Analyze the user's message and determine:

1. What is the user asking for?
   - content_generation: Writing, content creation, brand voice, style, tone, copywriting
   - business_info: Target audience, positioning, competitors, value proposition, market strategy
   - compliance: Legal questions, disclaimers, forbidden claims, regulations, risk
   - technical_setup: CRM setup, GHL (GoHighLevel), workflows, pipelines, automations, templates
   - general: General questions, greetings, unclear intent

2. Which business cards are relevant? (Card types: BRAND_VOICE_CARD, STYLE_RULES, POSITIONING_CARD, COMPLIANCE_RULES, GHL_IMPLEMENTATION_NOTES)

Return JSON:
{
  "category": "content_generation" | "business_info" | "compliance" | "technical_setup" | "general",
  "relevantCardTypes": ["BRAND_VOICE_CARD", "STYLE_RULES"],
  "confidence": 85,
  "reasoning": "User is asking about writing style, so brand voice and style rules are relevant"
}"""


def _card_ids_for_types(catalog: Sequence[Card], card_types: Sequence[str]) -> list[str]:
    """Resolve card ids by type, in catalog order."""
    wanted = set(card_types)
    return [card.id for card in catalog if card.type in wanted]


def _score_keywords(message: str) -> dict[IntentCategory, int]:
    """Count keyword hits per category."""
    message_lower = message.lower()
    return {
        category: sum(1 for keyword in keywords if keyword in message_lower)
        for category, keywords in KEYWORD_PATTERNS.items()
    }


def classify_intent_fallback(message: str, catalog: Sequence[Card]) -> Intent:
    """
    Keyword-based classification. Always succeeds.

    The category with the most keyword hits wins, ties going to the first
    declared category. Confidence is min(60 + hits * 5, 90), or 50 with
    category "general" when nothing matched.
    """
    scores = _score_keywords(message)

    best_category = IntentCategory.GENERAL
    best_score = 0
    for category, score in scores.items():
        if score > best_score:
            best_category, best_score = category, score

    if best_score > 0:
        confidence = min(60 + best_score * 5, 90)
    else:
        confidence = 50

    return Intent(
        category=best_category,
        relevant_card_ids=_card_ids_for_types(catalog, CATEGORY_CARD_TYPES[best_category]),
        confidence=confidence,
        reasoning=f"Keyword-based analysis detected {best_category.value} intent",
    )


def _intent_from_analysis(analysis: dict[str, Any], catalog: Sequence[Card]) -> Intent:
    """Validate an analyzer response into an Intent."""
    try:
        category = IntentCategory(analysis.get("category") or IntentCategory.GENERAL.value)
    except ValueError:
        logger.debug(f"Analyzer returned unknown category {analysis.get('category')!r}")
        category = IntentCategory.GENERAL

    card_types = analysis.get("relevantCardTypes")
    if not isinstance(card_types, list):
        card_types = []
    card_types = [t for t in card_types if isinstance(t, str)]

    confidence = analysis.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)) or not confidence:
        confidence = DEFAULT_ANALYZER_CONFIDENCE
    confidence = int(max(0, min(100, round(confidence))))

    reasoning = analysis.get("reasoning")
    if not isinstance(reasoning, str) or not reasoning:
        reasoning = "AI analysis"

    return Intent(
        category=category,
        relevant_card_ids=_card_ids_for_types(catalog, card_types),
        confidence=confidence,
        reasoning=reasoning,
    )


async def classify_intent(
    message: str,
    catalog: Sequence[Card],
    analyzer: IntentAnalyzer | None = None,
) -> Intent:
    """
    Classify the latest user message.

    Args:
        message: User's message text
        catalog: Cards of the conversation's brain (ids and types are used)
        analyzer: Optional LLM analyzer; keyword fallback when absent or failing

    Returns:
        Intent for this turn
    """
    if analyzer is not None:
        try:
            analysis = await analyzer.analyze(
                INTENT_SYSTEM_PROMPT,
                f'Analyze this user message: "{message}"',
            )
            return _intent_from_analysis(analysis, catalog)
        except ClassificationUnavailable as e:
            logger.warning(f"Intent analysis unavailable, using keyword fallback: {e}")
        except Exception as e:
            logger.warning(f"Intent analysis failed, using keyword fallback: {e}")

    return classify_intent_fallback(message, catalog)
