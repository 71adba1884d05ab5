"""API router for v1 endpoints."""

from fastapi import APIRouter

from brain_chat.api import conversations

router = APIRouter()

# Business brain conversations
router.include_router(conversations.router, tags=["conversations"])
