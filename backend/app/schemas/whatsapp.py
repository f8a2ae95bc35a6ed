"""WhatsApp connection schemas."""

from pydantic import BaseModel


class ConnectionStatusResponse(BaseModel):
    """GET /v1/whatsapp/status response body."""

    status: str
    qr: str | None = None
    phone: str | None = None
