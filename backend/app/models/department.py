"""Routing department ORM model."""

from sqlalchemy import CheckConstraint, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.database import Base


class Department(Base):
    __tablename__ = "departments"
    __table_args__ = (
        CheckConstraint("type IN ('ai', 'human', 'hybrid')", name="ck_departments_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    icon: Mapped[str] = mapped_column(String(16), default="", nullable=False)
    type: Mapped[str] = mapped_column(String(16), default="ai", nullable=False)  # 'ai' | 'human' | 'hybrid'
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    prompt: Mapped[str | None] = mapped_column(Text, nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
