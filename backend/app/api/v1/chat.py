"""Web chat widget endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query

from app.api.deps import get_chat_engine, get_conversation_store, get_turn_lock
from app.models.session import PLATFORM_WEB
from app.schemas.chat import (
    ChatMessageRequest,
    ChatMessageResponse,
    MessageOut,
    SessionStartResponse,
)
from app.services.chat.engine import ChatEngine
from app.services.chat.locking import TurnLock
from app.services.chat.store import ConversationStore
from app.services.chat.texts import GREETING

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("/session", response_model=SessionStartResponse)
async def start_session(
    store: ConversationStore = Depends(get_conversation_store),
) -> SessionStartResponse:
    """Create a web session and return the greeting that asks for the full name."""
    session = await store.create_web_session()
    return SessionStartResponse(session_id=session.session_id, greeting=GREETING)


@router.post("/message", response_model=ChatMessageResponse)
async def send_message(
    body: ChatMessageRequest,
    engine: ChatEngine = Depends(get_chat_engine),
    lock: TurnLock = Depends(get_turn_lock),
) -> ChatMessageResponse:
    """Run one conversation turn for the widget."""
    async with lock.hold(body.session_id):
        result = await engine.process_message(body.session_id, body.message, PLATFORM_WEB)
    return ChatMessageResponse(
        response=result.response,
        options=result.options,
        controlled_by=result.controlled_by,
        redirect_url=result.redirect_url,
    )


@router.get("/history", response_model=list[MessageOut])
async def history(
    session_id: str = Query(..., min_length=1),
    store: ConversationStore = Depends(get_conversation_store),
) -> list[MessageOut]:
    """Messages of a session, oldest first. Unknown sessions have no history."""
    return [MessageOut.model_validate(m) for m in await store.history(session_id)]
