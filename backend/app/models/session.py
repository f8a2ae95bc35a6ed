"""Conversation session ORM model."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.database import Base

PLATFORM_WEB = "web"
PLATFORM_WHATSAPP = "whatsapp"
MODE_AI = "AI"
CONTROLLER_ADMIN = "admin"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    platform: Mapped[str] = mapped_column(
        String(16), default=PLATFORM_WEB, nullable=False
    )  # 'web' | 'whatsapp'
    full_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    first_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    current_mode: Mapped[str | None] = mapped_column(String(16), nullable=True)  # 'AI' | None
    current_department: Mapped[str | None] = mapped_column(Text, nullable=True)
    controlled_by: Mapped[str | None] = mapped_column(String(16), nullable=True)  # 'admin' | None
    last_options: Mapped[list | None] = mapped_column(JSON, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    last_message_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    # Relationships
    messages: Mapped[list["Message"]] = relationship(  # noqa: F821
        back_populates="session", lazy="raise"
    )
