"""Admin panel request/response schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class LoginRequest(BaseModel):
    """POST /v1/auth/login request body."""

    username: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class StatsResponse(BaseModel):
    sessions: int
    messages: int
    document_chunks: int


class SessionOut(BaseModel):
    """A chat session as listed in the admin inbox."""

    model_config = ConfigDict(from_attributes=True)

    session_id: str
    platform: str
    full_name: str | None = None
    first_name: str | None = None
    phone: str | None = None
    current_mode: str | None = None
    current_department: str | None = None
    controlled_by: str | None = None
    is_read: bool
    created_at: datetime
    last_message_at: datetime


class AgentMessageRequest(BaseModel):
    """POST /v1/admin/sessions/{session_id}/send request body."""

    text: str = Field(min_length=1, max_length=4000)


DepartmentType = Literal["ai", "human", "hybrid"]


class DepartmentIn(BaseModel):
    """Create or replace a department. Human departments need a phone."""

    name: str = Field(min_length=1, max_length=255)
    icon: str = ""
    type: DepartmentType = "ai"
    phone: str | None = None
    prompt: str | None = None
    display_order: int = 0

    @model_validator(mode="after")
    def _human_needs_phone(self) -> "DepartmentIn":
        if self.type == "human" and not (self.phone or "").strip():
            raise ValueError("phone is required for human departments")
        return self


class DepartmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    icon: str
    type: str
    phone: str | None = None
    prompt: str | None = None
    display_order: int


class SettingsUpdate(BaseModel):
    """PUT /v1/admin/settings body: keys to upsert. Masked values are ignored."""

    values: dict[str, str]


class DocumentOut(BaseModel):
    filename: str
    chunks: int
    created_at: datetime | None = None


class UploadResponse(BaseModel):
    filename: str
    chunks: int
