"""WPPConnect server client and transport.

Talks HTTP to a WPPConnect server (https://github.com/wppconnect-team/wppconnect-server):
token generation, session start/status/logout, and message sends.
Requests are retried with exponential backoff on transient status
codes and network errors; the final failure raises WhatsAppError.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

import httpx
import structlog

from app.core.config import settings
from app.core.exceptions import WhatsAppError
from app.services.chat.texts import Option
from app.services.whatsapp.base import WhatsAppTransport, chat_phone, render_mode

logger = structlog.get_logger(__name__)

_SUCCESS_CODES = {200, 201}

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class GatewayStatus:
    """Session state as reported by the WPPConnect server."""

    state: str
    qr: str | None = None


def _parse_codes(raw: str) -> set[int]:
    return {int(code.strip()) for code in raw.split(",") if code.strip()}


class WPPConnectClient:
    """HTTP client for one WPPConnect session."""

    def __init__(
        self,
        base_url: str | None = None,
        session_name: str | None = None,
        secret_key: str | None = None,
        max_retries: int | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._session = session_name or settings.wppconnect_session
        self._secret = secret_key if secret_key is not None else settings.wppconnect_secret_key
        self._max_retries = max(1, max_retries or settings.whatsapp_max_retries)
        self._transient_status_codes = _parse_codes(settings.whatsapp_transient_status_codes)
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url or settings.wppconnect_url,
            timeout=30.0,
        )
        self._sleep = sleep
        self._token: str | None = None

    async def aclose(self) -> None:
        await self._http.aclose()

    # -- Auth -----------------------------------------------------------------

    async def _ensure_token(self) -> str:
        if self._token:
            return self._token
        response = await self._request(
            "POST",
            f"/api/{self._session}/{self._secret}/generate-token",
            operation="generate_token",
            authenticated=False,
        )
        token = response.get("token")
        if not token:
            raise WhatsAppError("WPPConnect did not return a token", details={"response": response})
        self._token = token
        logger.info("wppconnect_token_generated", session=self._session)
        return token

    # -- Retry helper ---------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        payload: dict[str, Any] | None = None,
        authenticated: bool = True,
    ) -> dict[str, Any]:
        """Send one request with retry and exponential backoff.

        A 401 drops the cached token and is retried once with a fresh one.
        Raises WhatsAppError when every attempt failed.
        """
        refreshed = False
        attempt = 0
        while True:
            headers = {}
            if authenticated:
                headers["Authorization"] = f"Bearer {await self._ensure_token()}"
            try:
                response = await self._http.request(method, path, json=payload, headers=headers)
            except httpx.TimeoutException as e:
                if attempt < self._max_retries - 1:
                    await self._backoff(operation, attempt, reason="timeout")
                    attempt += 1
                    continue
                raise WhatsAppError(
                    f"WPPConnect {operation} timed out after retries",
                    details={"timeout": True, "attempts": self._max_retries},
                ) from e
            except httpx.RequestError as e:
                if attempt < self._max_retries - 1:
                    await self._backoff(operation, attempt, reason=str(e))
                    attempt += 1
                    continue
                raise WhatsAppError(
                    f"WPPConnect {operation} network error: {e}",
                    details={"network_error": True, "attempts": self._max_retries},
                ) from e

            if response.status_code in _SUCCESS_CODES:
                try:
                    body = response.json()
                except ValueError:
                    body = {}
                return body if isinstance(body, dict) else {"response": body}

            if response.status_code == 401 and authenticated and not refreshed:
                logger.info("wppconnect_token_rejected", operation=operation)
                self._token = None
                refreshed = True
                continue

            if response.status_code in self._transient_status_codes and attempt < self._max_retries - 1:
                await self._backoff(operation, attempt, reason=f"status {response.status_code}")
                attempt += 1
                continue

            raise WhatsAppError(
                f"WPPConnect {operation} returned status {response.status_code}",
                details={"status_code": response.status_code, "body": response.text[:500]},
            )

    async def _backoff(self, operation: str, attempt: int, reason: str) -> None:
        delay = 2 ** attempt
        logger.warning(
            "wppconnect_request_retry",
            operation=operation,
            attempt=attempt + 1,
            max_retries=self._max_retries,
            backoff_seconds=delay,
            reason=reason,
        )
        await self._sleep(delay)

    # -- Session lifecycle ----------------------------------------------------

    async def start_session(self, webhook_url: str | None = None) -> GatewayStatus:
        payload: dict[str, Any] = {"waitQrCode": True}
        if webhook_url:
            payload["webhook"] = webhook_url
        body = await self._request("POST", f"/api/{self._session}/start-session", "start_session", payload)
        return GatewayStatus(state=str(body.get("status", "")), qr=body.get("qrcode"))

    async def status(self) -> GatewayStatus:
        body = await self._request("GET", f"/api/{self._session}/status-session", "status_session")
        return GatewayStatus(state=str(body.get("status", "")), qr=body.get("qrcode"))

    async def logout(self) -> None:
        await self._request("POST", f"/api/{self._session}/logout-session", "logout_session")
        self._token = None

    async def host_phone(self) -> str | None:
        body = await self._request("GET", f"/api/{self._session}/host-device", "host_device")
        data = body.get("response") or {}
        wid = data.get("wid") if isinstance(data, dict) else None
        if isinstance(wid, dict):
            return wid.get("user")
        if isinstance(wid, str):
            return chat_phone(wid)
        return None

    # -- Messages -------------------------------------------------------------

    async def send_text(self, phone: str, text: str) -> None:
        await self._request(
            "POST",
            f"/api/{self._session}/send-message",
            "send_message",
            {"phone": phone, "isGroup": False, "message": text},
        )

    async def send_buttons(self, phone: str, text: str, options: Sequence[Option]) -> None:
        await self._request(
            "POST",
            f"/api/{self._session}/send-buttons",
            "send_buttons",
            {
                "phone": phone,
                "isGroup": False,
                "message": text,
                "options": {
                    "useTemplateButtons": True,
                    "buttons": [{"id": opt["value"], "text": opt["label"]} for opt in options],
                },
            },
        )

    async def send_list(self, phone: str, text: str, options: Sequence[Option]) -> None:
        await self._request(
            "POST",
            f"/api/{self._session}/send-list-message",
            "send_list",
            {
                "phone": phone,
                "isGroup": False,
                "description": text,
                "buttonText": "Ver opções",
                "sections": [
                    {
                        "title": "Opções",
                        "rows": [
                            {"rowId": opt["value"], "title": opt["label"], "description": ""}
                            for opt in options
                        ],
                    }
                ],
            },
        )


class WPPConnectTransport(WhatsAppTransport):
    """WhatsAppTransport over a WPPConnectClient."""

    def __init__(self, client: WPPConnectClient) -> None:
        self._client = client

    async def send(self, to: str, text: str, options: Sequence[Option] | None = None) -> None:
        phone = chat_phone(to)
        mode = render_mode(options)
        if mode == "buttons":
            await self._client.send_buttons(phone, text, options or [])
        elif mode == "list":
            await self._client.send_list(phone, text, options or [])
        else:
            await self._client.send_text(phone, text)
        logger.info("whatsapp_message_sent", mode=mode, text_len=len(text))
