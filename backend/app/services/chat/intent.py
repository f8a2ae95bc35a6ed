"""Intent classification for inbound chat messages.

Exact selections ("IA" or a department name) resolve locally so menu
clicks never depend on an external service. Everything else is a single
lightweight gateway call whose label is parsed by substring.
"""

from __future__ import annotations

from enum import Enum
from typing import Collection, Protocol

import structlog

from app.services.chat.texts import AI_SELECTION

logger = structlog.get_logger(__name__)


class IntentType(str, Enum):
    SELECTION = "SELECTION"
    MENU = "MENU"
    ONBOARDING = "ONBOARDING"
    QUESTION = "QUESTION"


class Completer(Protocol):
    async def complete(self, prompt: str, system_prompt: str = "") -> str: ...


INTENT_CLASSIFICATION_PROMPT = """Classifique a intenção desta mensagem para um chatbot de suporte:
- "MENU": Se o usuário quer ver opções, listar departamentos, ou cancelar a ação atual. NÃO CLASSIFIQUE NOME DE DEPARTAMENTO COMO MENU.
- "QUESTION": Se o usuário tem uma dúvida ou pede informação.
- "ONBOARDING": Se a mensagem parece ser a resposta a uma pergunta de Nome ou número de celular.

Mensagem: "{message}"
RETORNE APENAS UMA PALAVRA: MENU, QUESTION ou ONBOARDING."""


def is_selection(message: str, department_names: Collection[str]) -> bool:
    return message == AI_SELECTION or message in department_names


class IntentClassifier:
    """Classifies user messages before any routing happens."""

    def __init__(self, llm: Completer) -> None:
        self._llm = llm

    @staticmethod
    def _parse_intent_label(raw: str) -> IntentType:
        """MENU if the reply mentions MENU, else ONBOARDING if it mentions that, else QUESTION."""
        label = raw.upper().strip()
        if "MENU" in label:
            return IntentType.MENU
        if "ONBOARDING" in label:
            return IntentType.ONBOARDING
        return IntentType.QUESTION

    async def classify(self, message: str, department_names: Collection[str]) -> IntentType:
        """Return the intent for ``message``. Never raises; defaults to QUESTION."""
        if is_selection(message, department_names):
            logger.debug("intent_fast_path_selection", message_len=len(message))
            return IntentType.SELECTION
        try:
            raw = await self._llm.complete(INTENT_CLASSIFICATION_PROMPT.format(message=message))
        except Exception as e:
            logger.warning("intent_classification_failed", error=str(e), message_len=len(message))
            return IntentType.QUESTION
        intent = self._parse_intent_label(raw)
        logger.debug("intent_classified", intent=intent.value, message_len=len(message))
        return intent
