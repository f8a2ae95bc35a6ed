"""WhatsApp webhook and connection endpoints."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Body, Depends

from app.api.deps import (
    get_chat_engine,
    get_connection_supervisor,
    get_current_admin,
    get_turn_lock,
    get_whatsapp_transport,
)
from app.schemas.whatsapp import ConnectionStatusResponse
from app.services.chat.engine import ChatEngine
from app.services.chat.locking import TurnLock
from app.services.whatsapp.base import WhatsAppTransport
from app.services.whatsapp.inbound import handle_inbound, parse_inbound
from app.services.whatsapp.supervisor import ConnectionSupervisor

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/whatsapp", tags=["whatsapp"])


@router.post("/webhook")
async def webhook(
    background: BackgroundTasks,
    payload: dict[str, Any] = Body(...),
    engine: ChatEngine = Depends(get_chat_engine),
    lock: TurnLock = Depends(get_turn_lock),
    transport: WhatsAppTransport = Depends(get_whatsapp_transport),
    supervisor: ConnectionSupervisor = Depends(get_connection_supervisor),
) -> dict[str, str]:
    """Receive WPPConnect events.

    onmessage      → conversation turn, reply sent over the transport
    qrcode         → QR kept on the supervisor until scanned
    status-find    → connection state update (closes reconnect in background)
    """
    event = payload.get("event")
    if event == "onmessage":
        message = parse_inbound(payload)
        if message is None:
            return {"status": "ignored"}
        await handle_inbound(message, engine, lock, transport)
        return {"status": "processed"}
    if event == "qrcode":
        qr = payload.get("qrcode") or payload.get("urlcode")
        if qr:
            await supervisor.on_qrcode(qr)
        return {"status": "ok"}
    if event == "status-find":
        background.add_task(supervisor.on_gateway_state, str(payload.get("status", "")))
        return {"status": "ok"}
    logger.debug("whatsapp_event_ignored", whatsapp_event=event)
    return {"status": "ignored"}


@router.get(
    "/status",
    response_model=ConnectionStatusResponse,
    dependencies=[Depends(get_current_admin)],
)
async def status(
    supervisor: ConnectionSupervisor = Depends(get_connection_supervisor),
) -> ConnectionStatusResponse:
    return ConnectionStatusResponse(**supervisor.snapshot())


@router.post(
    "/connect",
    response_model=ConnectionStatusResponse,
    dependencies=[Depends(get_current_admin)],
)
async def connect(
    supervisor: ConnectionSupervisor = Depends(get_connection_supervisor),
) -> ConnectionStatusResponse:
    return ConnectionStatusResponse(**await supervisor.connect())


@router.post("/logout", dependencies=[Depends(get_current_admin)])
async def logout(
    supervisor: ConnectionSupervisor = Depends(get_connection_supervisor),
) -> dict[str, str]:
    await supervisor.logout()
    return {"message": "Logged out"}
