"""System prompt and chat message assembly for brain conversations.

Prompt layout:
1. Role line with the business name
2. Knowledge base JSON (or intake data before synthesis)
3. Loaded cards, labelled with their tier
4. Behavioral rules
5. Rolling context summary, when one exists
"""

import json
from typing import Sequence

from brain_chat.context.card_loader import EXCERPT_LENGTH
from brain_chat.core.schemas_cards import BusinessBrain, CardTier, LoadedCard, StoredMessage

def _tier_label(tier: CardTier, excerpt_length: int) -> str:
    if tier == CardTier.FULL:
        return "[FULL CARD - Description + Metadata]"
    if tier == CardTier.EXCERPT:
        return f"[EXCERPT - First {excerpt_length} characters]"
    return "[TITLE ONLY]"

# ruff: noqa: E501
BEHAVIORAL_RULES = """=== BEHAVIORAL RULES ===

You MUST follow these instructions:

1. ALWAYS cite which knowledge card(s) your answer uses.
   Example: "Based on the Brand Voice card..." or "According to the Compliance Rules card..."

2. Follow the Brand Voice card's style patterns EXACTLY.
   - Use the vocabulary, tone, and rhetorical patterns specified.
   - Avoid forbidden words and phrases.
   - Match the formality level and relationship dynamics.

3. If compliance rules apply to the user's question, mention them EXPLICITLY.
   - Reference required disclaimers when relevant.
   - Warn about forbidden claims.
   - Provide legal guidance from the Compliance Rules card.

4. Stay STRICTLY within the boundaries of the provided knowledge base and cards.
   - Do NOT fabricate details outside the provided information.
   - If information is not available, say "This information is not available in the knowledge base."
   - Do NOT invent pricing, customer details, competitors, or other factual data.

5. Use the knowledge base to provide accurate, contextual responses.
   - Reference specific sections when relevant (e.g., "According to the positioning strategy...").
   - Cross-reference related concepts (e.g., link objections to positioning, ICPs to content).
"""


def _knowledge_base_block(brain: BusinessBrain, business_name: str) -> list[str]:
    lines = ["=== KNOWLEDGE BASE ==="]
    if brain.knowledge_base:
        lines.append(f"\nThe following is the complete knowledge base for {business_name}:\n")
        lines.append(json.dumps(brain.knowledge_base, indent=2, default=str))
        lines.append("")
    else:
        lines.append("\nNote: Knowledge base is not yet synthesized. Using intake data only.")
        if brain.intake_data:
            lines.append(f"\nIntake Data:\n{json.dumps(brain.intake_data, indent=2, default=str)}\n")
    return lines


def _cards_block(loaded_cards: Sequence[LoadedCard], excerpt_length: int) -> list[str]:
    lines = [
        "=== KNOWLEDGE CARDS ===",
        "\nThe following knowledge cards are relevant to the current conversation:\n",
    ]
    if not loaded_cards:
        lines.append("No cards loaded for this conversation.\n")
        return lines

    for card in loaded_cards:
        lines.append(f"\n--- {card.title} ({card.type}) ---")
        lines.append(f"Relevance: {card.relevance}%")
        lines.append(_tier_label(card.tier, excerpt_length))
        lines.append(card.content)
    lines.append("")
    return lines


def build_system_prompt(
    brain: BusinessBrain,
    loaded_cards: Sequence[LoadedCard],
    context_summary: str | None,
    excerpt_length: int = EXCERPT_LENGTH,
) -> str:
    """Assemble the system prompt for one turn."""
    business_name = brain.business_name

    lines = [f"You are an AI assistant with deep knowledge of {business_name}.\n"]
    lines.extend(_knowledge_base_block(brain, business_name))
    lines.extend(_cards_block(loaded_cards, excerpt_length))
    lines.append(BEHAVIORAL_RULES)

    if context_summary:
        lines.append("=== CONTEXT SUMMARY ===")
        lines.append("\nThe following is a summary of important points from previous conversation turns:\n")
        lines.append(f"{context_summary}\n")

    lines.append("\n=== END OF SYSTEM PROMPT ===")
    lines.append("\nNow respond to the user's message following all the rules above.")
    return "\n".join(lines)


def build_chat_messages(
    system_prompt: str,
    history: Sequence[StoredMessage],
    user_content: str,
) -> list[dict[str, str]]:
    """System prompt, prior history in sequence order, then the new user message."""
    messages = [{"role": "system", "content": system_prompt}]
    for msg in sorted(history, key=lambda m: m.sequence_number):
        messages.append({"role": msg.role, "content": msg.content})
    messages.append({"role": "user", "content": user_content})
    return messages
