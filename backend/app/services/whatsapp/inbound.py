"""Inbound WhatsApp events from the WPPConnect webhook."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from app.core.exceptions import WhatsAppError
from app.models.session import PLATFORM_WHATSAPP
from app.services.chat.engine import ChatEngine, EngineResult
from app.services.chat.locking import TurnLock
from app.services.whatsapp.base import WhatsAppTransport, chat_phone

logger = structlog.get_logger(__name__)

_IGNORED_CHATS = ("@g.us", "@broadcast", "@newsletter")


@dataclass(frozen=True)
class InboundMessage:
    chat_id: str
    text: str
    display_name: str | None = None


def parse_inbound(payload: dict[str, Any]) -> InboundMessage | None:
    """Extract a direct user message from an ``onmessage`` event.

    Group chats, broadcasts, our own messages, chat ids without a phone
    part and empty bodies yield None. A tapped list row or reply button
    yields its option value instead of the displayed label.
    """
    if payload.get("event") != "onmessage":
        return None
    chat_id = str(payload.get("from") or "")
    if not chat_phone(chat_id).strip() or chat_id.endswith(_IGNORED_CHATS):
        return None
    if payload.get("isGroupMsg") or payload.get("fromMe"):
        return None
    text = _selected_value(payload) or str(payload.get("body") or payload.get("content") or "").strip()
    if not text:
        return None
    sender = payload.get("sender") or {}
    display_name = (
        payload.get("notifyName")
        or sender.get("pushname")
        or sender.get("name")
        or None
    )
    return InboundMessage(chat_id=chat_id, text=text, display_name=display_name)


def _selected_value(payload: dict[str, Any]) -> str:
    list_reply = (payload.get("listResponse") or {}).get("singleSelectReply") or {}
    selected = (
        payload.get("selectedRowId")
        or list_reply.get("selectedRowId")
        or payload.get("selectedButtonId")
    )
    return str(selected or "").strip()


async def handle_inbound(
    message: InboundMessage,
    engine: ChatEngine,
    lock: TurnLock,
    transport: WhatsAppTransport,
) -> EngineResult:
    """Run one turn under the session lock and send the reply, if any."""
    async with lock.hold(message.chat_id):
        result = await engine.process_message(
            message.chat_id,
            message.text,
            PLATFORM_WHATSAPP,
            {"display_name": message.display_name},
        )
    if not result.response:
        logger.debug("whatsapp_no_reply", controlled_by=result.controlled_by)
        return result
    text = result.response
    if result.redirect_url:
        text = f"{text}\n{result.redirect_url}"
    try:
        await transport.send(message.chat_id, text, result.options)
    except WhatsAppError as e:
        logger.error("whatsapp_reply_failed", error=e.message, details=e.details)
    return result
