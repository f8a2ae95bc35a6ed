"""Integration tests for schema creation and department seeding."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import InvalidRequestError

from app.db.database import DEFAULT_DEPARTMENTS, init_db, seed_departments
from app.models.session import ChatSession


class TestSeed:
    @pytest.mark.asyncio
    async def test_defaults_present_in_order(self, store) -> None:
        departments = await store.list_departments()
        assert [(d.name, d.type) for d in departments] == [
            ("Vendas", "ai"),
            ("Suporte Técnico", "ai"),
            ("Financeiro", "ai"),
            ("Projetos Customizados", "human"),
        ]

    @pytest.mark.asyncio
    async def test_init_is_idempotent(self, db_engine, session_factory, store) -> None:
        await init_db(bind=db_engine, session_factory=session_factory)
        assert len(await store.list_departments()) == len(DEFAULT_DEPARTMENTS)

    @pytest.mark.asyncio
    async def test_seed_restores_deleted_default_only(self, db, store) -> None:
        vendas = await store.get_department("Vendas")
        await store.delete_department(vendas.id)
        assert await seed_departments(db) == 1
        await db.flush()
        assert await store.get_department("Vendas") is not None


class TestRelationships:
    @pytest.mark.asyncio
    async def test_session_messages_never_lazy_load(self, chat_engine, db, store) -> None:
        await chat_engine.process_message("web-1", "Maria Silva", "web")
        db.expunge_all()
        session = await store.get_session("web-1")
        assert ChatSession.messages.property.lazy == "raise"
        with pytest.raises(InvalidRequestError):
            session.messages
        assert len(await store.history("web-1")) == 2
