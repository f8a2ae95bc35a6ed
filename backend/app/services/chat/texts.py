"""Fixed user-facing texts (pt-BR) and menu option helpers."""

from __future__ import annotations

import re
from typing import Iterable, TypedDict
from urllib.parse import quote

from app.models.department import Department


class Option(TypedDict):
    label: str
    value: str


AI_SELECTION = "IA"
AI_OPTION: Option = {"label": "🤖 Tirar dúvidas com IA", "value": AI_SELECTION}

GREETING = (
    "👋 Olá! Sou a sua assistente virtual da BHS Eletrônica.\n"
    "Estou aqui para ajudar você! 😊\n"
    "📝 Para começarmos, por favor digite seu nome completo:"
)
PHONE_PROMPT = "Prazer {first_name}, agora digite seu Whatsapp com DDD (ex 11977777777):"
INVALID_PHONE = "Número inválido. Digite apenas números com DDD (ex: 11977777777)."
ONBOARDED = "Perfeito! 📱\n🎯 Como posso ajudar você hoje?"
MENU_HEADER = "Menu Principal:"
AI_ACK = "Você agora está falando com a IA. Como posso ajudar?"
DEPARTMENT_ACK = "Você está no departamento {name}. Qual a sua dúvida?"
HUMAN_REDIRECT = "Entendido! Estou te redirecionando para um atendente de {name} no WhatsApp..."
NOT_UNDERSTOOD = (
    "Não entendi sua escolha. Por favor, selecione uma opção do menu ou digite 'menu'."
)
WHATSAPP_FOOTER = "(Responda com o número ou clique na opção)"
GENERIC_FAILURE = "Desculpe, ocorreu um erro ao processar sua mensagem."
HANDOFF_TEXT = "Olá, vim do site e gostaria de falar com {name}."

DEFAULT_SYSTEM_PROMPT = (
    "Você é um assistente virtual da BHS Eletrônica.\n"
    "Use o contexto abaixo para responder à pergunta do usuário.\n"
    "Se a resposta não estiver no contexto, diga que não encontrou a informação "
    "específica, mas tente ajudar com conhecimentos gerais de eletrônica se possível."
)
DEPARTMENT_PROMPT_FALLBACK = "Você é um especialista do departamento {name} da BHS."

_NON_DIGITS = re.compile(r"\D")


def digits_only(value: str) -> str:
    return _NON_DIGITS.sub("", value)


def menu_options(departments: Iterable[Department]) -> list[Option]:
    """AI choice first, then departments in the order given."""
    options: list[Option] = [dict(AI_OPTION)]  # type: ignore[list-item]
    for dept in departments:
        options.append({"label": f"{dept.icon or ''} {dept.name}", "value": dept.name})
    return options


def handoff_link(phone: str, department_name: str) -> str:
    """wa.me deep link to a department's phone with a prefilled greeting."""
    text = quote(HANDOFF_TEXT.format(name=department_name), safe="")
    return f"https://wa.me/{digits_only(phone)}?text={text}"


def _number_marker(position: int) -> str:
    # Keycap emoji exist for single digits only.
    if position < 10:
        return f"{position}️⃣"
    return f"{position}."


def render_numbered(text: str, options: list[Option]) -> str:
    """Append a numbered option list and reply instructions for WhatsApp."""
    lines = "\n".join(
        f"{_number_marker(i)} {opt['label']}" for i, opt in enumerate(options, start=1)
    )
    return f"{text}\n\n{lines}\n\n{WHATSAPP_FOOTER}"


def build_prompt(instructions: str, context: str, question: str) -> str:
    return f"{instructions}\n\nContexto:\n{context}\n\nPergunta: {question}"
