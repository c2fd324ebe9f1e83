"""Character chat API routes."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from atmosphera.api.schemas import (
    ChatMessageRequest,
    ChatReplyResponse,
    ChatSessionResponse,
    ChatStartRequest,
    PersonaSchema,
)
from atmosphera.core.dependencies import get_chat_registry
from atmosphera.services.chat import ChatRegistry, ChatSessionNotFound

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/chat", tags=["chat"])


@router.post(
    "/sessions", response_model=ChatSessionResponse, status_code=status.HTTP_201_CREATED
)
async def open_chat_session(
    body: ChatStartRequest,
    chats: Annotated[ChatRegistry, Depends(get_chat_registry)],
) -> ChatSessionResponse:
    """Create an in-character persona for the book and open a chat with it."""
    session_id, session = await chats.open(body.title, body.author)
    return ChatSessionResponse(
        session_id=session_id, persona=PersonaSchema.model_validate(session.persona)
    )


@router.post("/sessions/{session_id}/messages", response_model=ChatReplyResponse)
async def send_chat_message(
    session_id: str,
    body: ChatMessageRequest,
    chats: Annotated[ChatRegistry, Depends(get_chat_registry)],
) -> ChatReplyResponse:
    """Send one message; 404 when the session is unknown or evicted."""
    try:
        reply = await chats.send(session_id, body.message)
    except ChatSessionNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat session not found")
    return ChatReplyResponse(reply=reply)
