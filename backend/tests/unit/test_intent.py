"""Unit tests for IntentClassifier.classify() and label parsing.

Tests cover:
  - Fast path: "IA" and exact department names never call the gateway
  - Near misses ("ia", trailing space) go to the gateway
  - Label parsing: MENU beats ONBOARDING, substring match, case-insensitive
  - Unrecognised or apology output → QUESTION
  - Gateway failure → QUESTION (no raise)
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from app.services.chat.intent import IntentClassifier, IntentType, is_selection
from app.services.llm.gateway import APOLOGY_TEXT


_DEPARTMENTS = {"Vendas", "Suporte Técnico", "Financeiro", "Projetos Customizados"}


def _make_mock_llm(return_text: str) -> MagicMock:
    """Create a mock gateway whose complete() returns the given text."""
    mock = MagicMock()
    mock.complete = AsyncMock(return_value=return_text)
    return mock


class TestSelectionFastPath:
    """Exact selections resolve without the gateway."""

    @pytest.mark.asyncio
    async def test_ai_selection(self) -> None:
        llm = _make_mock_llm("MENU")
        result = await IntentClassifier(llm).classify("IA", _DEPARTMENTS)
        assert result == IntentType.SELECTION
        llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_department_name_selection(self) -> None:
        llm = _make_mock_llm("MENU")
        result = await IntentClassifier(llm).classify("Suporte Técnico", _DEPARTMENTS)
        assert result == IntentType.SELECTION
        llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_lowercase_ia_is_not_a_selection(self) -> None:
        llm = _make_mock_llm("QUESTION")
        result = await IntentClassifier(llm).classify("ia", _DEPARTMENTS)
        assert result == IntentType.QUESTION
        llm.complete.assert_awaited_once()

    def test_is_selection_requires_exact_match(self) -> None:
        assert is_selection("Vendas", _DEPARTMENTS)
        assert not is_selection("Vendas ", _DEPARTMENTS)
        assert not is_selection("vendas", _DEPARTMENTS)


class TestLabelParsing:
    """Gateway output → IntentType."""

    @pytest.mark.asyncio
    async def test_menu(self) -> None:
        result = await IntentClassifier(_make_mock_llm("MENU")).classify("voltar", _DEPARTMENTS)
        assert result == IntentType.MENU

    @pytest.mark.asyncio
    async def test_menu_case_insensitive_substring(self) -> None:
        llm = _make_mock_llm("  a intenção é: menu.\n")
        result = await IntentClassifier(llm).classify("opções", _DEPARTMENTS)
        assert result == IntentType.MENU

    @pytest.mark.asyncio
    async def test_onboarding(self) -> None:
        llm = _make_mock_llm("ONBOARDING")
        result = await IntentClassifier(llm).classify("Maria Silva", _DEPARTMENTS)
        assert result == IntentType.ONBOARDING

    @pytest.mark.asyncio
    async def test_menu_wins_over_onboarding(self) -> None:
        llm = _make_mock_llm("ONBOARDING ou MENU")
        result = await IntentClassifier(llm).classify("x", _DEPARTMENTS)
        assert result == IntentType.MENU

    @pytest.mark.asyncio
    async def test_unrecognised_is_question(self) -> None:
        llm = _make_mock_llm("não sei")
        result = await IntentClassifier(llm).classify("qual o horário?", _DEPARTMENTS)
        assert result == IntentType.QUESTION

    @pytest.mark.asyncio
    async def test_apology_is_question(self) -> None:
        llm = _make_mock_llm(APOLOGY_TEXT)
        result = await IntentClassifier(llm).classify("qual o horário?", _DEPARTMENTS)
        assert result == IntentType.QUESTION

    @pytest.mark.asyncio
    async def test_prompt_embeds_message(self) -> None:
        llm = _make_mock_llm("QUESTION")
        await IntentClassifier(llm).classify("tem garantia?", _DEPARTMENTS)
        prompt = llm.complete.await_args.args[0]
        assert 'Mensagem: "tem garantia?"' in prompt


class TestClassifierFailure:
    @pytest.mark.asyncio
    async def test_gateway_error_defaults_to_question(self) -> None:
        llm = MagicMock()
        llm.complete = AsyncMock(side_effect=RuntimeError("boom"))
        result = await IntentClassifier(llm).classify("oi", _DEPARTMENTS)
        assert result == IntentType.QUESTION
