"""Conversation persistence over one request-scoped AsyncSession.

Sessions, messages, departments and the system prompt. The store never
commits on its own except through checkpoint(), which the engine uses to
make the inbound user message durable before any routing work.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    DepartmentConflictError,
    DepartmentNotFoundError,
    SessionNotFoundError,
)
from app.models.department import Department
from app.models.document import DocumentChunk
from app.models.message import Message
from app.models.session import PLATFORM_WEB, ChatSession
from app.services.settings import SYSTEM_PROMPT, get_setting

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationStore:
    """Data access for the conversation engine and the admin surface."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    # -- Transaction control --------------------------------------------------

    async def checkpoint(self) -> None:
        await self._db.commit()

    async def discard(self) -> None:
        """Drop uncommitted changes after a failed turn."""
        await self._db.rollback()

    # -- Sessions -------------------------------------------------------------

    async def get_session(self, session_id: str) -> ChatSession | None:
        result = await self._db.execute(
            select(ChatSession).where(ChatSession.session_id == session_id)
        )
        return result.scalar_one_or_none()

    async def require_session(self, session_id: str) -> ChatSession:
        session = await self.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return session

    async def create_session(self, session_id: str, platform: str) -> ChatSession:
        now = _utcnow()
        session = ChatSession(
            session_id=session_id,
            platform=platform,
            is_read=False,
            created_at=now,
            last_message_at=now,
        )
        self._db.add(session)
        await self._db.flush()
        logger.info("chat_session_created", session_id=session_id, platform=platform)
        return session

    async def create_web_session(self) -> ChatSession:
        return await self.create_session(str(uuid.uuid4()), PLATFORM_WEB)

    async def get_or_create_session(self, session_id: str, platform: str) -> ChatSession:
        """Load or lazily create a session, marking it active and unread."""
        session = await self.get_session(session_id)
        if session is None:
            return await self.create_session(session_id, platform)
        session.last_message_at = _utcnow()
        session.is_read = False
        await self._db.flush()
        return session

    async def touch(self, session: ChatSession) -> None:
        session.last_message_at = _utcnow()
        await self._db.flush()

    async def save(self, session: ChatSession) -> None:
        await self._db.flush()

    async def list_sessions(self) -> list[ChatSession]:
        """Most recently active first."""
        result = await self._db.execute(
            select(ChatSession).order_by(ChatSession.last_message_at.desc(), ChatSession.id.desc())
        )
        return list(result.scalars().all())

    # -- Messages -------------------------------------------------------------

    async def add_message(self, session_id: str, sender: str, content: str) -> Message:
        message = Message(session_id=session_id, sender=sender, content=content, timestamp=_utcnow())
        self._db.add(message)
        await self._db.flush()
        return message

    async def history(self, session_id: str) -> list[Message]:
        """Messages oldest first."""
        result = await self._db.execute(
            select(Message)
            .where(Message.session_id == session_id)
            .order_by(Message.timestamp.asc(), Message.id.asc())
        )
        return list(result.scalars().all())

    # -- Departments ----------------------------------------------------------

    async def list_departments(self) -> list[Department]:
        result = await self._db.execute(
            select(Department).order_by(Department.display_order.asc(), Department.id.asc())
        )
        return list(result.scalars().all())

    async def department_names(self) -> set[str]:
        result = await self._db.execute(select(Department.name))
        return set(result.scalars().all())

    async def get_department(self, name: str) -> Department | None:
        result = await self._db.execute(select(Department).where(Department.name == name))
        return result.scalar_one_or_none()

    async def get_department_by_id(self, department_id: int) -> Department:
        department = await self._db.get(Department, department_id)
        if department is None:
            raise DepartmentNotFoundError(f"Department {department_id} not found")
        return department

    async def create_department(self, **fields) -> Department:
        if await self.get_department(fields["name"]) is not None:
            raise DepartmentConflictError()
        department = Department(**fields)
        self._db.add(department)
        await self._db.flush()
        logger.info("department_created", name=department.name, type=department.type)
        return department

    async def update_department(self, department_id: int, **fields) -> Department:
        department = await self.get_department_by_id(department_id)
        new_name = fields.get("name")
        if new_name and new_name != department.name:
            if await self.get_department(new_name) is not None:
                raise DepartmentConflictError()
        for key, value in fields.items():
            setattr(department, key, value)
        await self._db.flush()
        logger.info("department_updated", department_id=department_id, fields=sorted(fields))
        return department

    async def delete_department(self, department_id: int) -> None:
        department = await self.get_department_by_id(department_id)
        await self._db.delete(department)
        await self._db.flush()
        logger.info("department_deleted", department_id=department_id, name=department.name)

    # -- Settings / stats -----------------------------------------------------

    async def system_prompt(self) -> str | None:
        value = await get_setting(self._db, SYSTEM_PROMPT)
        return value or None

    async def stats(self) -> dict[str, int]:
        async def _count(column) -> int:
            return int((await self._db.execute(select(func.count(column)))).scalar_one())

        return {
            "sessions": await _count(ChatSession.id),
            "messages": await _count(Message.id),
            "document_chunks": await _count(DocumentChunk.id),
        }
