"""Error taxonomy for the conversation engine.

Only GenerationFailed aborts a turn. Every other failure is logged and
degrades to a safe default at the point where it is raised.
"""


class BrainChatError(Exception):
    """Base class for engine errors."""


class ClassificationUnavailable(BrainChatError):
    """Intent collaborator missing, failed, or returned unusable output."""


class GenerationFailed(BrainChatError):
    """The text-generation collaborator could not produce an answer."""


class SummarizationFailed(BrainChatError):
    """The summarization collaborator could not produce a context summary."""


class MalformedCardMetadata(BrainChatError):
    """Card metadata had the wrong shape; the offending fields are treated as absent."""


class ConversationNotFound(BrainChatError):
    """Conversation does not exist or does not belong to the brain."""


class BrainNotFound(BrainChatError):
    """Business brain does not exist."""


class RateLimitExceeded(BrainChatError):
    """Caller exhausted its rate-limit bucket."""

    def __init__(self, key: str, retry_after: int):
        self.key = key
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded for {key}. Try again in {retry_after} seconds.")
