"""Message ORM model."""

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.database import Base

SENDER_USER = "user"
SENDER_BOT = "bot"
SENDER_SYSTEM = "system"


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        CheckConstraint("sender IN ('user', 'bot', 'system')", name="ck_messages_sender"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("chat_sessions.session_id"), index=True, nullable=False
    )
    sender: Mapped[str] = mapped_column(String(16), nullable=False)  # 'user' | 'bot' | 'system'
    content: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    # Relationships
    session: Mapped["ChatSession"] = relationship(back_populates="messages")  # noqa: F821
