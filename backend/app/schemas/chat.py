"""Web chat request/response schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ChatOption(BaseModel):
    """A quick-reply choice rendered by the widget."""

    label: str
    value: str


class SessionStartResponse(BaseModel):
    """POST /v1/chat/session response body."""

    session_id: str
    greeting: str


class ChatMessageRequest(BaseModel):
    """POST /v1/chat/message request body."""

    session_id: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1, max_length=4000)


class ChatMessageResponse(BaseModel):
    """POST /v1/chat/message response body."""

    response: str
    options: list[ChatOption] | None = None
    controlled_by: str | None = None
    redirect_url: str | None = None


class MessageOut(BaseModel):
    """Single message in a transcript."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    session_id: str
    sender: str
    content: str
    timestamp: datetime
