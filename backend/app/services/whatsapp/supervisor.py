"""WhatsApp connection supervisor.

Tracks the gateway session as DISCONNECTED → CONNECTING → AWAITING_SCAN
→ CONNECTED. An unexpected close triggers a bounded reconnect with
exponential backoff; an explicit logout never reconnects. The
conversation engine knows nothing about any of this.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable

import structlog

from app.core.exceptions import WhatsAppError
from app.services.whatsapp.wppconnect import GatewayStatus, WPPConnectClient

logger = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_SCAN = "awaiting_scan"
    CONNECTED = "connected"


# WPPConnect reports both session states and status-find event names.
_CONNECTED_STATES = {"CONNECTED", "INCHAT", "ISLOGGED", "SUCCESSCHAT", "CHATSAVAILABLE"}
_SCAN_STATES = {"QRCODE", "NOTLOGGED", "QRREADFAIL"}
_CONNECTING_STATES = {"INITIALIZING", "STARTING", "QRREADSUCCESS", "WAITFORLOGIN", "WAITCHAT"}
_CLOSED_STATES = {
    "CLOSED",
    "DISCONNECTED",
    "BROWSERCLOSE",
    "AUTOCLOSECALLED",
    "DESCONNECTEDMOBILE",
    "DELETETOKEN",
}


def classify_gateway_state(state: str) -> ConnectionStatus | None:
    """Map a WPPConnect state name to a ConnectionStatus. Unknown names map to None."""
    key = state.replace("_", "").replace("-", "").upper()
    if key in _CONNECTED_STATES:
        return ConnectionStatus.CONNECTED
    if key in _SCAN_STATES:
        return ConnectionStatus.AWAITING_SCAN
    if key in _CONNECTING_STATES:
        return ConnectionStatus.CONNECTING
    if key in _CLOSED_STATES:
        return ConnectionStatus.DISCONNECTED
    return None


class ConnectionSupervisor:
    """Owns the WhatsApp connection state and the reconnect policy."""

    def __init__(
        self,
        client: WPPConnectClient,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        webhook_url: str | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._client = client
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._webhook_url = webhook_url
        self._sleep = sleep
        self.status = ConnectionStatus.DISCONNECTED
        self.qr: str | None = None
        self.phone: str | None = None
        self._logged_out = True
        self._reconnecting = False

    def snapshot(self) -> dict[str, Any]:
        return {"status": self.status.value, "qr": self.qr, "phone": self.phone}

    # -- Operator actions -----------------------------------------------------

    async def connect(self) -> dict[str, Any]:
        """Start (or resume) the gateway session. Returns the new snapshot."""
        self._logged_out = False
        await self._start()
        return self.snapshot()

    async def logout(self) -> None:
        self._logged_out = True
        try:
            await self._client.logout()
        finally:
            self.status = ConnectionStatus.DISCONNECTED
            self.qr = None
            self.phone = None
            logger.info("whatsapp_logged_out")

    # -- Gateway events -------------------------------------------------------

    async def on_qrcode(self, qr: str) -> None:
        self.qr = qr
        self._transition(ConnectionStatus.AWAITING_SCAN)

    async def on_gateway_state(self, state: str, qr: str | None = None) -> None:
        """Apply a state reported by the gateway (webhook or poll)."""
        target = classify_gateway_state(state)
        if target is None:
            logger.debug("whatsapp_state_ignored", state=state)
            return
        if target == ConnectionStatus.DISCONNECTED:
            await self.handle_unexpected_close(reason=state)
            return
        if target == ConnectionStatus.AWAITING_SCAN and qr:
            self.qr = qr
        self._transition(target)
        if target == ConnectionStatus.CONNECTED:
            await self._refresh_phone()

    async def handle_unexpected_close(self, reason: str = "closed") -> None:
        """Reconnect with bounded exponential backoff unless logged out."""
        self.qr = None
        self._transition(ConnectionStatus.DISCONNECTED)
        if self._logged_out:
            logger.info("whatsapp_closed_after_logout", reason=reason)
            return
        if self._reconnecting:
            return
        self._reconnecting = True
        try:
            for attempt in range(1, self._max_attempts + 1):
                delay = min(self._base_delay * 2 ** (attempt - 1), self._max_delay)
                logger.warning(
                    "whatsapp_reconnect_scheduled",
                    attempt=attempt,
                    max_attempts=self._max_attempts,
                    delay_seconds=delay,
                    reason=reason,
                )
                await self._sleep(delay)
                if self._logged_out:
                    return
                try:
                    await self._start()
                except WhatsAppError as e:
                    logger.warning("whatsapp_reconnect_failed", attempt=attempt, error=e.message)
                    continue
                if self.status in (ConnectionStatus.CONNECTED, ConnectionStatus.AWAITING_SCAN):
                    return
            self._transition(ConnectionStatus.DISCONNECTED)
            logger.error("whatsapp_reconnect_exhausted", attempts=self._max_attempts)
        finally:
            self._reconnecting = False

    async def watchdog(self) -> None:
        """Periodic poll: reconcile local state with the gateway."""
        if self._logged_out or self._reconnecting:
            return
        try:
            reported = await self._client.status()
        except WhatsAppError as e:
            logger.warning("whatsapp_watchdog_poll_failed", error=e.message)
            await self.handle_unexpected_close(reason="poll_failed")
            return
        await self.on_gateway_state(reported.state, reported.qr)

    # -- Internals ------------------------------------------------------------

    async def _start(self) -> None:
        self._transition(ConnectionStatus.CONNECTING)
        try:
            reported: GatewayStatus = await self._client.start_session(self._webhook_url)
        except WhatsAppError:
            self._transition(ConnectionStatus.DISCONNECTED)
            raise
        target = classify_gateway_state(reported.state) or ConnectionStatus.CONNECTING
        if target == ConnectionStatus.DISCONNECTED:
            self._transition(target)
            return
        if reported.qr:
            self.qr = reported.qr
            target = ConnectionStatus.AWAITING_SCAN
        self._transition(target)
        if target == ConnectionStatus.CONNECTED:
            await self._refresh_phone()

    async def _refresh_phone(self) -> None:
        try:
            self.phone = await self._client.host_phone()
        except WhatsAppError as e:
            logger.debug("whatsapp_host_phone_unavailable", error=e.message)

    def _transition(self, target: ConnectionStatus) -> None:
        if target == ConnectionStatus.CONNECTED:
            self.qr = None
        if target != self.status:
            logger.info("whatsapp_connection_state", previous=self.status.value, current=target.value)
        self.status = target
