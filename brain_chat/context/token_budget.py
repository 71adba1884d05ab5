"""Token counting and truncation for prompt components.

Uses tiktoken's cl100k_base encoding, which is what the OpenAI chat models
use and a close enough estimate for the Anthropic summarizer.
"""

import tiktoken


class TokenBudgetManager:
    """Counts and trims text against token limits."""

    # Transcript cap for summarization prompts
    SUMMARY_INPUT_BUDGET = 8_000

    def __init__(self, encoding: str = "cl100k_base"):
        self._encoder = tiktoken.get_encoding(encoding)

    def count_tokens(self, text: str) -> int:
        """Count tokens in text using tiktoken."""
        if not text:
            return 0
        return len(self._encoder.encode(text))

    def count_messages(self, messages: list[dict[str, str]]) -> int:
        """Approximate prompt size of a chat message list."""
        return sum(self.count_tokens(m.get("content", "")) + 4 for m in messages)

    def truncate_text(self, text: str, max_tokens: int) -> str:
        """
        Truncate text to fit within token limit.

        Returns:
            Truncated text (with ... suffix if truncated)
        """
        if not text:
            return text

        tokens = self._encoder.encode(text)
        if len(tokens) <= max_tokens:
            return text

        truncated_tokens = tokens[: max_tokens - 1]
        return self._encoder.decode(truncated_tokens) + "..."


_budget_manager: TokenBudgetManager | None = None


def get_budget_manager() -> TokenBudgetManager:
    """Get or create singleton TokenBudgetManager."""
    global _budget_manager
    if _budget_manager is None:
        _budget_manager = TokenBudgetManager()
    return _budget_manager
