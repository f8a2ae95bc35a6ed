"""Async SQLAlchemy engine and session factory.

All database operations use the SQLAlchemy 2.0 async session pattern.
SQLite (aiosqlite) is the default store; any async URL such as
postgresql+asyncpg:// works unchanged. Connection errors are caught and
re-raised as DatabaseConnectionError so the API layer receives a typed,
structured error.
"""

from collections.abc import AsyncGenerator
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import settings
from app.core.exceptions import DatabaseConnectionError

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


def build_engine(url: str) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to server databases."""
    kwargs: dict[str, Any] = {"echo": False, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        kwargs.update(pool_size=20, max_overflow=10)
    return create_async_engine(url, **kwargs)


engine: AsyncEngine = build_engine(settings.database_url)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# name, icon, type, display_order
DEFAULT_DEPARTMENTS: list[tuple[str, str, str, int]] = [
    ("Vendas", "🛒", "ai", 1),
    ("Suporte Técnico", "🔧", "ai", 2),
    ("Financeiro", "💰", "ai", 3),
    ("Projetos Customizados", "⚙️", "human", 4),
]


async def seed_departments(session: AsyncSession) -> int:
    """Insert the default departments that are missing. Returns rows added."""
    from app.models.department import Department

    existing = set((await session.execute(select(Department.name))).scalars().all())
    added = 0
    for name, icon, dept_type, order in DEFAULT_DEPARTMENTS:
        if name in existing:
            continue
        session.add(Department(name=name, icon=icon, type=dept_type, display_order=order))
        added += 1
    return added


async def init_db(
    bind: AsyncEngine | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> None:
    """Create all tables and seed default departments."""
    import app.models  # noqa: F401  registers every model on Base.metadata

    bind = bind or engine
    session_factory = session_factory or async_session_factory
    try:
        async with bind.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with session_factory() as session:
            added = await seed_departments(session)
            await session.commit()
    except SQLAlchemyError as e:
        logger.error("database_init_failed", error=str(e))
        raise DatabaseConnectionError(f"Database initialisation failed: {e}") from e
    logger.info("database_initialised", seeded_departments=added)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async database session.

    Commits on success, rolls back on exception, always closes.
    SQLAlchemy driver errors are caught and re-raised as DatabaseConnectionError.
    """
    try:
        async with async_session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("database_session_error", error=str(e))
                raise DatabaseConnectionError(f"Database operation failed: {e}") from e
            except Exception:
                await session.rollback()
                raise
    except DatabaseConnectionError:
        raise
    except SQLAlchemyError as e:
        logger.error("database_connection_error", error=str(e))
        raise DatabaseConnectionError(f"Database connection failed: {e}") from e


async def close_database() -> None:
    """Gracefully dispose of the async engine connection pool."""
    logger.info("database_shutdown")
    await engine.dispose()
