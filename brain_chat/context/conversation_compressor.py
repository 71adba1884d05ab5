"""Periodic conversation compaction into a rolling context summary.

The summary is a single replaceable slot on the conversation. It is rewritten
when the message count first reaches the threshold and then on every
multiple of the interval, never on every turn. Compaction is best-effort:
failures are logged and the previous summary stays.
"""

from typing import Sequence

from brain_chat.context.token_budget import get_budget_manager
from brain_chat.core.errors import SummarizationFailed
from brain_chat.core.llm import Summarizer
from brain_chat.core.logging import get_logger
from brain_chat.core.schemas_cards import ConversationState, StoredMessage
from brain_chat.db.stores import ConversationStore

logger = get_logger(__name__)

DEFAULT_THRESHOLD = 10
DEFAULT_INTERVAL = 5
DEFAULT_MAX_MESSAGES = 20
MESSAGE_PREVIEW_CHARS = 200


SUMMARY_SYSTEM_PROMPT = """You are a conversation summarizer. Create a concise summary (2-3 sentences) of the key topics and context from this conversation. Focus on:
- Main topics discussed
- Key decisions or conclusions
- Important context for future messages

Keep it brief and actionable."""


def _is_compaction_point(count: int, threshold: int, interval: int) -> bool:
    if count == threshold:
        return True
    return count > threshold and interval > 0 and count % interval == 0


def should_compact(
    message_count: int,
    threshold: int = DEFAULT_THRESHOLD,
    interval: int = DEFAULT_INTERVAL,
    previous_count: int | None = None,
) -> bool:
    """
    Whether the count transition into ``message_count`` crosses a compaction point.

    Compaction points are ``threshold`` itself and every later multiple of
    ``interval``. A turn adds two messages, so callers pass the count before
    the turn as ``previous_count``; it defaults to ``message_count - 1``.
    """
    if previous_count is None:
        previous_count = message_count - 1
    return any(
        _is_compaction_point(count, threshold, interval)
        for count in range(previous_count + 1, message_count + 1)
    )


def format_messages_for_summary(
    messages: Sequence[StoredMessage],
    preview_chars: int = MESSAGE_PREVIEW_CHARS,
) -> str:
    """Chronological ``role: content`` lines, each message cut to a preview."""
    ordered = sorted(messages, key=lambda m: m.sequence_number)
    return "\n\n".join(f"{m.role}: {m.content[:preview_chars]}" for m in ordered)


async def compact_conversation(
    store: ConversationStore,
    conversation: ConversationState,
    summarizer: Summarizer | None,
    max_messages: int = DEFAULT_MAX_MESSAGES,
) -> str | None:
    """
    Replace the conversation's context summary with a fresh one.

    Args:
        store: Conversation persistence
        conversation: Conversation state after the current turn
        summarizer: Summarization collaborator; compaction is skipped without one
        max_messages: Cap on recent messages fed to the summarizer

    Returns:
        New summary, or None when compaction was skipped or failed
    """
    if summarizer is None:
        logger.debug(f"No summarizer configured; skipping compaction for {conversation.id}")
        return None

    try:
        limit = min(conversation.message_count, max_messages)
        messages = store.list_recent_messages(conversation.id, limit=limit)
        if not messages:
            return None

        budget_manager = get_budget_manager()
        transcript = budget_manager.truncate_text(
            format_messages_for_summary(messages),
            budget_manager.SUMMARY_INPUT_BUDGET,
        )

        summary = await summarizer.summarize(SUMMARY_SYSTEM_PROMPT, transcript)
        store.update_conversation(conversation.id, context_summary=summary)

        logger.info(
            f"Compacted conversation {conversation.id}: {len(messages)} messages "
            f"at count {conversation.message_count}"
        )
        return summary

    except SummarizationFailed as e:
        logger.warning(f"Context summary failed for {conversation.id}, keeping previous: {e}")
        return None
    except Exception as e:
        logger.warning(
            f"Context compaction failed for {conversation.id}, keeping previous: {e}",
            exc_info=True,
        )
        return None
