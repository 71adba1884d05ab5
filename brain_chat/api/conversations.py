"""Business brain conversation API endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from brain_chat.api.dependencies import (
    get_card_catalog,
    get_chat_rate_limiter,
    get_conversation_store,
    get_engine,
)
from brain_chat.core.errors import (
    BrainNotFound,
    ConversationNotFound,
    GenerationFailed,
    RateLimitExceeded,
)
from brain_chat.core.logging import get_logger
from brain_chat.core.rate_limiter import RateLimiter
from brain_chat.core.turn_engine import ConversationEngine
from brain_chat.db.stores import CardCatalog, ConversationStore

logger = get_logger(__name__)

router = APIRouter()


class CreateConversationRequest(BaseModel):
    """Request to open a conversation."""

    title: str = "New Conversation"


class SendMessageRequest(BaseModel):
    """A user message for a conversation."""

    content: str


def _check_rate_limit(limiter: RateLimiter, brain_id: str) -> None:
    try:
        limiter.check_limit(f"chat:{brain_id}")
    except RateLimitExceeded as e:
        raise HTTPException(
            status_code=429,
            detail=f"Rate limit exceeded. Try again in {e.retry_after} seconds.",
            headers={"Retry-After": str(e.retry_after)},
        )


def _require_brain(catalog: CardCatalog, brain_id: str) -> None:
    if catalog.get_brain(brain_id) is None:
        raise HTTPException(status_code=404, detail="Business brain not found or access denied.")


@router.get("/business-brain/{brain_id}/conversations")
async def list_conversations(
    brain_id: str,
    limit: int = Query(50, ge=1, le=50, description="Maximum number of conversations to return"),
    catalog: CardCatalog = Depends(get_card_catalog),
    store: ConversationStore = Depends(get_conversation_store),
) -> Dict[str, Any]:
    """List a brain's conversations, most recently active first."""
    _require_brain(catalog, brain_id)

    conversations = store.list_conversations(brain_id, limit=limit)
    return {
        "success": True,
        "conversations": [
            {
                "id": c.id,
                "title": c.title,
                "lastMessageAt": c.last_message_at.isoformat() if c.last_message_at else None,
                "messageCount": c.message_count,
                "status": c.status,
            }
            for c in conversations
        ],
    }


@router.post("/business-brain/{brain_id}/conversations")
async def create_conversation(
    brain_id: str,
    request: CreateConversationRequest,
    catalog: CardCatalog = Depends(get_card_catalog),
    store: ConversationStore = Depends(get_conversation_store),
) -> Dict[str, Any]:
    """Open a new conversation on a business brain."""
    _require_brain(catalog, brain_id)

    try:
        conversation = store.create_conversation(brain_id, title=request.title)
        return {"success": True, "conversation": conversation.model_dump(mode="json")}
    except Exception as e:
        logger.error(f"Error creating conversation: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/business-brain/{brain_id}/conversations/{conversation_id}/messages")
async def get_conversation_messages(
    brain_id: str,
    conversation_id: str,
    limit: int = Query(100, ge=1, le=500, description="Maximum number of messages to return"),
    store: ConversationStore = Depends(get_conversation_store),
) -> Dict[str, Any]:
    """List the most recent messages of a conversation, oldest first."""
    if store.get_conversation(brain_id, conversation_id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found or access denied.")

    messages = store.list_recent_messages(conversation_id, limit=limit)
    return {
        "messages": [m.model_dump(mode="json") for m in messages],
        "total": len(messages),
    }


@router.post("/business-brain/{brain_id}/conversations/{conversation_id}/messages")
async def send_message(
    brain_id: str,
    conversation_id: str,
    request: SendMessageRequest,
    engine: ConversationEngine = Depends(get_engine),
    limiter: RateLimiter = Depends(get_chat_rate_limiter),
) -> Dict[str, Any]:
    """
    Run one chat turn.

    The response carries the assistant message with citations and
    confidence, the intent, the loaded cards and the updated conversation
    state. A failed generation returns 502 and writes no assistant message.
    """
    if not request.content or not request.content.strip():
        raise HTTPException(status_code=400, detail="Message content is required.")

    _check_rate_limit(limiter, brain_id)

    try:
        result = await engine.process_turn(brain_id, conversation_id, request.content)
    except ConversationNotFound:
        raise HTTPException(status_code=404, detail="Conversation not found or access denied.")
    except BrainNotFound:
        raise HTTPException(status_code=404, detail="Business brain not found or access denied.")
    except GenerationFailed as e:
        raise HTTPException(status_code=502, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error processing message: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create message.")

    return {
        "success": True,
        "message": result.user_message.model_dump(mode="json"),
        "assistantMessage": {
            "id": result.assistant_message.id,
            "content": result.assistant_message.content,
            "citations": [c.model_dump(mode="json") for c in result.citations],
            "confidence": result.confidence,
        },
        "intent": result.intent.model_dump(mode="json"),
        "cards": [c.model_dump(mode="json") for c in result.loaded_cards],
        "cardRelevance": result.relevance_map,
        "conversation": result.conversation.model_dump(mode="json"),
    }


@router.get("/business-brain/{brain_id}/rate-limit-status")
async def get_rate_limit_status(
    brain_id: str,
    limiter: RateLimiter = Depends(get_chat_rate_limiter),
) -> Dict[str, Any]:
    """Chat rate-limit stats for a brain."""
    return {"status": "ok", "rate_limit": limiter.get_stats(f"chat:{brain_id}")}
