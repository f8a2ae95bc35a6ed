"""Integration tests for ChatEngine.process_message() over a real SQLite store.

Tests:
  - Web onboarding: name → phone (validated) → menu
  - "IA" typed at the name step is taken as the name
  - Main menu question → AI mode with retrieval context
  - Department selection and department-scoped answers
  - AI and department modes are mutually exclusive
  - Human department → wa.me redirect, no mode set
  - MENU is idempotent and clears mode/department
  - Admin-controlled sessions: message stored, no gateway/retrieval calls
  - WhatsApp: identity prefill, numbered options, numeric remap
  - Unexpected fault → generic failure text, user message kept
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from app.services.chat.engine import ChatEngine
from app.services.chat.locking import TurnLock
from app.services.chat.texts import (
    AI_ACK,
    DEPARTMENT_ACK,
    GENERIC_FAILURE,
    INVALID_PHONE,
    MENU_HEADER,
    NOT_UNDERSTOOD,
    ONBOARDED,
    PHONE_PROMPT,
)
from app.services.whatsapp.inbound import InboundMessage, handle_inbound
from tests.conftest import FakeGateway, FakeRetrieval, FakeTransport

_WEB = "web"
_WHATSAPP = "whatsapp"
_WA_CHAT = "5511999999999@c.us"


async def _onboard(engine: ChatEngine, session_id: str = "web-1") -> None:
    await engine.process_message(session_id, "Maria Silva", _WEB)
    await engine.process_message(session_id, "11977777777", _WEB)


async def _senders(store, session_id: str) -> list[tuple[str, str]]:
    return [(m.sender, m.content) for m in await store.history(session_id)]


class TestOnboarding:
    @pytest.mark.asyncio
    async def test_full_onboarding(self, chat_engine, store) -> None:
        first = await chat_engine.process_message("web-1", "Maria Silva", _WEB)
        assert first.response == PHONE_PROMPT.format(first_name="Maria")
        assert first.options is None

        rejected = await chat_engine.process_message("web-1", "123", _WEB)
        assert rejected.response == INVALID_PHONE

        done = await chat_engine.process_message("web-1", "(11) 97777-7777", _WEB)
        assert done.response == ONBOARDED
        assert [o["value"] for o in done.options] == [
            "IA",
            "Vendas",
            "Suporte Técnico",
            "Financeiro",
            "Projetos Customizados",
        ]

        session = await store.get_session("web-1")
        assert session.full_name == "Maria Silva"
        assert session.first_name == "Maria"
        assert session.phone == "11977777777"
        assert await _senders(store, "web-1") == [
            ("user", "Maria Silva"),
            ("bot", PHONE_PROMPT.format(first_name="Maria")),
            ("user", "123"),
            ("bot", INVALID_PHONE),
            ("user", "(11) 97777-7777"),
            ("bot", ONBOARDED),
        ]

    @pytest.mark.asyncio
    async def test_twelve_digit_phone_rejected(self, chat_engine, store) -> None:
        await chat_engine.process_message("web-1", "Maria", _WEB)
        result = await chat_engine.process_message("web-1", "551197777777", _WEB)
        assert result.response == INVALID_PHONE
        assert (await store.get_session("web-1")).phone is None

    @pytest.mark.asyncio
    async def test_ai_keyword_taken_as_name(self, chat_engine, store) -> None:
        result = await chat_engine.process_message("web-1", "IA", _WEB)
        assert result.response == PHONE_PROMPT.format(first_name="IA")
        session = await store.get_session("web-1")
        assert session.full_name == "IA"
        assert session.current_mode is None

    @pytest.mark.asyncio
    async def test_menu_during_onboarding_shows_menu(self, chat_engine, gateway, store) -> None:
        gateway.intent_label = "MENU"
        result = await chat_engine.process_message("web-1", "menu", _WEB)
        assert result.response == MENU_HEADER
        assert (await store.get_session("web-1")).full_name is None


class TestRouting:
    @pytest.mark.asyncio
    async def test_question_from_main_menu_enters_ai_mode(self, chat_engine, gateway, retrieval, store) -> None:
        await _onboard(chat_engine)
        result = await chat_engine.process_message("web-1", "Qual o horário?", _WEB)
        assert result.response == "Resposta gerada"
        assert retrieval.search_calls == ["Qual o horário?"]
        prompt = gateway.answer_calls[-1]
        assert "Horário: 8h às 18h." in prompt
        assert prompt.endswith("Pergunta: Qual o horário?")
        assert (await store.get_session("web-1")).current_mode == "AI"

    @pytest.mark.asyncio
    async def test_custom_system_prompt(self, chat_engine, gateway, db) -> None:
        from app.services.settings import SYSTEM_PROMPT, upsert_setting

        await upsert_setting(db, SYSTEM_PROMPT, "Responda em uma frase.")
        await _onboard(chat_engine)
        await chat_engine.process_message("web-1", "IA", _WEB)
        await chat_engine.process_message("web-1", "tem garantia?", _WEB)
        assert gateway.answer_calls[-1].startswith("Responda em uma frase.")

    @pytest.mark.asyncio
    async def test_department_selection_and_answer(self, chat_engine, gateway, store) -> None:
        await _onboard(chat_engine)
        selected = await chat_engine.process_message("web-1", "Vendas", _WEB)
        assert selected.response == DEPARTMENT_ACK.format(name="Vendas")

        await chat_engine.process_message("web-1", "Quanto custa?", _WEB)
        assert gateway.answer_calls[-1].startswith(
            "Você é um especialista do departamento Vendas da BHS."
        )
        session = await store.get_session("web-1")
        assert session.current_department == "Vendas"
        assert session.current_mode is None

    @pytest.mark.asyncio
    async def test_department_prompt_used(self, chat_engine, gateway, store) -> None:
        department = await store.get_department("Financeiro")
        await store.update_department(department.id, prompt="Fale sobre boletos.")
        await _onboard(chat_engine)
        await chat_engine.process_message("web-1", "Financeiro", _WEB)
        await chat_engine.process_message("web-1", "2ª via?", _WEB)
        assert gateway.answer_calls[-1].startswith("Fale sobre boletos.")

    @pytest.mark.asyncio
    async def test_modes_are_exclusive(self, chat_engine, store) -> None:
        await _onboard(chat_engine)
        await chat_engine.process_message("web-1", "Vendas", _WEB)
        result = await chat_engine.process_message("web-1", "IA", _WEB)
        assert result.response == AI_ACK
        session = await store.get_session("web-1")
        assert session.current_mode == "AI"
        assert session.current_department is None

        await chat_engine.process_message("web-1", "Suporte Técnico", _WEB)
        assert session.current_mode is None
        assert session.current_department == "Suporte Técnico"

    @pytest.mark.asyncio
    async def test_human_department_redirect(self, chat_engine, store) -> None:
        department = await store.get_department("Projetos Customizados")
        await store.update_department(department.id, phone="5511955554444")
        await _onboard(chat_engine)
        await chat_engine.process_message("web-1", "IA", _WEB)

        result = await chat_engine.process_message("web-1", "Projetos Customizados", _WEB)
        assert result.redirect_url.startswith("https://wa.me/5511955554444?text=")
        assert "Projetos Customizados" in result.response
        session = await store.get_session("web-1")
        assert session.current_mode is None
        assert session.current_department is None
        assert (await _senders(store, "web-1"))[-1] == ("bot", result.response)

    @pytest.mark.asyncio
    async def test_menu_is_idempotent(self, chat_engine, gateway, store) -> None:
        await _onboard(chat_engine)
        await chat_engine.process_message("web-1", "Vendas", _WEB)
        gateway.intent_label = "MENU"
        first = await chat_engine.process_message("web-1", "menu", _WEB)
        second = await chat_engine.process_message("web-1", "voltar ao menu", _WEB)
        assert first.response == second.response == MENU_HEADER
        assert first.options == second.options
        session = await store.get_session("web-1")
        assert session.current_mode is None
        assert session.current_department is None

    @pytest.mark.asyncio
    async def test_missing_parked_department_cleared(self, chat_engine, store) -> None:
        await _onboard(chat_engine)
        await chat_engine.process_message("web-1", "Vendas", _WEB)
        department = await store.get_department("Vendas")
        await store.delete_department(department.id)

        result = await chat_engine.process_message("web-1", "Quanto custa?", _WEB)
        assert result.response == NOT_UNDERSTOOD
        assert result.options[0]["value"] == "IA"
        assert (await store.get_session("web-1")).current_department is None


class TestAdminControl:
    @pytest.mark.asyncio
    async def test_controlled_session_skips_automation(self, chat_engine, gateway, retrieval, store) -> None:
        await _onboard(chat_engine)
        session = await store.get_session("web-1")
        session.controlled_by = "admin"
        await store.checkpoint()
        calls_before = len(gateway.complete_calls)

        result = await chat_engine.process_message("web-1", "Alguém aí?", _WEB)
        assert result.response == ""
        assert result.controlled_by == "admin"
        assert len(gateway.complete_calls) == calls_before
        assert retrieval.search_calls == []
        assert (await _senders(store, "web-1"))[-1] == ("user", "Alguém aí?")
        assert session.is_read is False


class TestWhatsApp:
    @pytest.mark.asyncio
    async def test_identity_prefill_skips_onboarding(self, chat_engine, store) -> None:
        result = await chat_engine.process_message(
            _WA_CHAT, "oi", _WHATSAPP, {"display_name": "João Souza"}
        )
        assert result.response == "Resposta gerada"
        session = await store.get_session(_WA_CHAT)
        assert session.platform == "whatsapp"
        assert session.phone == "5511999999999"
        assert session.full_name == "João Souza"
        assert session.first_name == "João"

    @pytest.mark.asyncio
    async def test_prefill_without_display_name_uses_phone(self, chat_engine, store) -> None:
        await chat_engine.process_message(_WA_CHAT, "oi", _WHATSAPP)
        assert (await store.get_session(_WA_CHAT)).full_name == "5511999999999"

    @pytest.mark.asyncio
    async def test_menu_numbered_and_numeric_reply_remapped(self, chat_engine, gateway, store) -> None:
        gateway.intent_label = "MENU"
        menu = await chat_engine.process_message(_WA_CHAT, "menu", _WHATSAPP, {"display_name": "João"})
        assert menu.response.startswith(MENU_HEADER)
        assert "1️⃣ 🤖 Tirar dúvidas com IA" in menu.response
        assert "2️⃣ 🛒 Vendas" in menu.response

        picked = await chat_engine.process_message(_WA_CHAT, "2", _WHATSAPP)
        assert picked.response == DEPARTMENT_ACK.format(name="Vendas")
        assert (await store.get_session(_WA_CHAT)).current_department == "Vendas"
        # The raw reply is what gets stored.
        assert ("user", "2") in await _senders(store, _WA_CHAT)

    @pytest.mark.asyncio
    async def test_out_of_range_number_falls_through(self, chat_engine, gateway, store) -> None:
        gateway.intent_label = "MENU"
        await chat_engine.process_message(_WA_CHAT, "menu", _WHATSAPP)
        gateway.intent_label = "QUESTION"
        calls_before = len(gateway.classification_calls)
        result = await chat_engine.process_message(_WA_CHAT, "9", _WHATSAPP)
        assert len(gateway.classification_calls) == calls_before + 1
        assert result.response == "Resposta gerada"

    @pytest.mark.asyncio
    async def test_tapped_list_label_remapped(self, chat_engine, gateway, store) -> None:
        gateway.intent_label = "MENU"
        await chat_engine.process_message(_WA_CHAT, "menu", _WHATSAPP, {"display_name": "João"})
        calls_before = len(gateway.classification_calls)

        picked = await chat_engine.process_message(_WA_CHAT, "🛒 Vendas", _WHATSAPP)
        assert picked.response == DEPARTMENT_ACK.format(name="Vendas")
        assert len(gateway.classification_calls) == calls_before
        assert (await store.get_session(_WA_CHAT)).current_department == "Vendas"

    @pytest.mark.asyncio
    async def test_chat_id_without_phone_goes_through_onboarding(self, chat_engine, store) -> None:
        first = await chat_engine.process_message("@c.us", "Maria Silva", _WHATSAPP)
        assert first.response == PHONE_PROMPT.format(first_name="Maria")
        second = await chat_engine.process_message("@c.us", "11977777777", _WHATSAPP)
        assert second.response.startswith(ONBOARDED)
        assert (await store.get_session("@c.us")).phone == "11977777777"

    @pytest.mark.asyncio
    async def test_web_numbers_are_not_remapped(self, chat_engine, gateway, store) -> None:
        await _onboard(chat_engine)
        result = await chat_engine.process_message("web-1", "2", _WEB)
        assert result.response == "Resposta gerada"
        assert (await store.get_session("web-1")).current_department is None


class TestWhatsAppInbound:
    @pytest.mark.asyncio
    async def test_human_redirect_sends_link(self, chat_engine, store) -> None:
        department = await store.get_department("Projetos Customizados")
        await store.update_department(department.id, phone="5511955554444")
        transport = FakeTransport()

        result = await handle_inbound(
            InboundMessage(chat_id=_WA_CHAT, text="Projetos Customizados", display_name="João"),
            chat_engine,
            TurnLock(wait_seconds=1.0),
            transport,
        )
        assert len(transport.sent) == 1
        sent = transport.sent[0]["text"]
        assert sent.startswith(result.response)
        assert sent.endswith(result.redirect_url)
        assert "https://wa.me/5511955554444?text=" in sent

    @pytest.mark.asyncio
    async def test_plain_reply_sent_as_is(self, chat_engine) -> None:
        transport = FakeTransport()
        result = await handle_inbound(
            InboundMessage(chat_id=_WA_CHAT, text="Qual o horário?", display_name="João"),
            chat_engine,
            TurnLock(wait_seconds=1.0),
            transport,
        )
        assert transport.sent == [{"to": _WA_CHAT, "text": result.response, "options": None}]


class TestFailure:
    @pytest.mark.asyncio
    async def test_unexpected_error_returns_generic_failure(self, store) -> None:
        retrieval = MagicMock()
        retrieval.search = AsyncMock(side_effect=RuntimeError("db gone"))
        engine = ChatEngine(store=store, retrieval=retrieval, llm=FakeGateway())
        await _onboard(engine)

        result = await engine.process_message("web-1", "Qual o horário?", _WEB)
        assert result.response == GENERIC_FAILURE
        assert (await _senders(store, "web-1"))[-1] == ("user", "Qual o horário?")

    @pytest.mark.asyncio
    async def test_empty_retrieval_still_answers(self, store) -> None:
        gateway = FakeGateway(answer="Não encontrei.")
        engine = ChatEngine(store=store, retrieval=FakeRetrieval(), llm=gateway)
        await _onboard(engine)
        result = await engine.process_message("web-1", "pergunta", _WEB)
        assert result.response == "Não encontrei."
        assert "Contexto:\n\n\nPergunta: pergunta" in gateway.answer_calls[-1]
