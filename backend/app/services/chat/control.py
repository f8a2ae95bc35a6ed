"""Operator takeover of chat sessions.

ControlService is the only writer of controlled_by = "admin".
send_as_agent() does exactly these things in order:
1. Load the session (SessionNotFoundError if unknown, nothing mutated)
2. Persist the text as a bot message
3. Force admin control and mark the session read
4. Flush, then forward the text over WhatsApp when the session is a WhatsApp one

A transport failure propagates as WhatsAppError so the request-scoped
transaction rolls back and the message is not recorded as sent.
"""

from __future__ import annotations

from typing import Protocol

import structlog

from app.models.message import SENDER_BOT, Message
from app.models.session import CONTROLLER_ADMIN, PLATFORM_WHATSAPP, ChatSession
from app.services.chat.store import ConversationStore

logger = structlog.get_logger(__name__)


class OutboundTransport(Protocol):
    async def send(self, to: str, text: str, options: list | None = None) -> None: ...


class ControlService:
    """Assume/release control, send as agent, mark read."""

    def __init__(
        self,
        store: ConversationStore,
        transport: OutboundTransport | None = None,
    ) -> None:
        self._store = store
        self._transport = transport

    async def assume_control(self, session_id: str) -> ChatSession:
        session = await self._store.require_session(session_id)
        session.controlled_by = CONTROLLER_ADMIN
        await self._store.save(session)
        logger.info("session_control_assumed", session_id=session_id)
        return session

    async def release_control(self, session_id: str) -> ChatSession:
        session = await self._store.require_session(session_id)
        session.controlled_by = None
        await self._store.save(session)
        logger.info("session_control_released", session_id=session_id)
        return session

    async def mark_read(self, session_id: str) -> ChatSession:
        session = await self._store.require_session(session_id)
        session.is_read = True
        await self._store.save(session)
        return session

    async def send_as_agent(self, session_id: str, text: str) -> Message:
        session = await self._store.require_session(session_id)
        message = await self._store.add_message(session_id, SENDER_BOT, text)
        session.controlled_by = CONTROLLER_ADMIN
        session.is_read = True
        await self._store.touch(session)

        if session.platform == PLATFORM_WHATSAPP:
            if self._transport is None:
                logger.warning("agent_message_not_forwarded_no_transport", session_id=session_id)
            else:
                await self._transport.send(session_id, text)
        logger.info(
            "agent_message_sent",
            session_id=session_id,
            platform=session.platform,
            text_len=len(text),
        )
        return message
