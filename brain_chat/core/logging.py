"""Structured logging configuration for the Business Brain chat engine.

Records logged while a turn is running carry the brain and conversation ids
of that turn, so lines from the classifier, the compressor and the LLM
clients can be grouped per conversation without threading ids through them.
"""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

# Fields that identify which conversation a record belongs to, in output order
SCOPE_FIELDS = ("brain_id", "conversation_id")

_conversation_scope: ContextVar[dict[str, str]] = ContextVar("conversation_scope", default={})


@contextmanager
def conversation_scope(brain_id: str, conversation_id: str) -> Iterator[None]:
    """Tag every record logged inside the block with the conversation's ids."""
    token = _conversation_scope.set({"brain_id": brain_id, "conversation_id": conversation_id})
    try:
        yield
    finally:
        _conversation_scope.reset(token)


class StructuredFormatter(logging.Formatter):
    """JSON-like structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured output."""
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        # Explicit fields on the record win over the ambient scope
        scope = dict(_conversation_scope.get())
        for field in SCOPE_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                scope[field] = value
        for field in SCOPE_FIELDS:
            if field in scope:
                log_data[field] = scope[field]

        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        # Format as key=value pairs for readability
        parts = [f"{k}={v}" for k, v in log_data.items()]
        return " ".join(parts)


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)

        # Set level based on environment
        try:
            from brain_chat.core.config import get_settings

            settings = get_settings()
            if settings.BRAIN_CHAT_ENV == "dev":
                logger.setLevel(logging.DEBUG)
            else:
                logger.setLevel(logging.INFO)
        except Exception:
            # Default to INFO if settings not available
            logger.setLevel(logging.INFO)

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Additional context fields; brain_id and conversation_id
            are emitted as scope fields ahead of the rest
    """
    extra: dict[str, Any] = {field: kwargs.pop(field) for field in SCOPE_FIELDS if field in kwargs}
    extra["extra_data"] = kwargs

    logger.log(level, msg, extra=extra)
