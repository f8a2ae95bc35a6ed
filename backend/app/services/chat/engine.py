"""Conversation engine: one call per inbound message.

ChatEngine.process_message() does exactly these things in order:
1. Load or create the session (refresh last_message_at, mark unread)
2. WhatsApp only: prefill phone/name from the channel identity
3. Persist the raw user message and commit it
4. Return an empty reply if an operator controls the session
5. Remap a bare number or a tapped label to the last offered option (WhatsApp)
6. Classify intent (exact selections never call the gateway)
7. MENU: clear mode/department and show the menu
8. Onboarding: capture name, then phone
9. Route: AI selection, human handoff, department entry, AI answer,
   department answer, or "not understood" with the menu
10. Finalize: number options for WhatsApp, persist the bot reply

The turn is committed before returning. Any unexpected fault is logged
and answered with a generic failure text; the user message committed
in step 3 is kept.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import structlog

from app.models.message import SENDER_BOT, SENDER_USER
from app.models.session import CONTROLLER_ADMIN, MODE_AI, PLATFORM_WHATSAPP, ChatSession
from app.services.chat.intent import IntentClassifier, IntentType
from app.services.chat.state import (
    AdminControlled,
    AiMode,
    DepartmentMode,
    MainMenu,
    OnboardingName,
    derive_state,
    is_onboarding,
)
from app.services.chat.store import ConversationStore
from app.services.chat.texts import (
    AI_ACK,
    AI_SELECTION,
    DEFAULT_SYSTEM_PROMPT,
    DEPARTMENT_ACK,
    DEPARTMENT_PROMPT_FALLBACK,
    GENERIC_FAILURE,
    GREETING,
    HUMAN_REDIRECT,
    INVALID_PHONE,
    MENU_HEADER,
    NOT_UNDERSTOOD,
    ONBOARDED,
    PHONE_PROMPT,
    Option,
    build_prompt,
    digits_only,
    handoff_link,
    menu_options,
    render_numbered,
)

logger = structlog.get_logger(__name__)


class Completer(Protocol):
    async def complete(self, prompt: str, system_prompt: str = "") -> str: ...


class Searcher(Protocol):
    async def search(self, query: str, limit: int | None = None) -> list[Any]: ...


@dataclass
class EngineResult:
    """Reply for one inbound message."""

    response: str
    options: list[Option] | None = None
    controlled_by: str | None = None
    redirect_url: str | None = None


class ChatEngine:
    """Session state machine shared by the web and WhatsApp channels."""

    def __init__(
        self,
        store: ConversationStore,
        retrieval: Searcher,
        llm: Completer,
    ) -> None:
        self._store = store
        self._retrieval = retrieval
        self._llm = llm
        self._classifier = IntentClassifier(llm)

    async def process_message(
        self,
        session_id: str,
        message: str,
        platform: str,
        metadata: dict[str, Any] | None = None,
    ) -> EngineResult:
        """Process one inbound message. Never raises."""
        try:
            result = await self._process(session_id, message, platform, metadata or {})
            # Commit inside the caller's turn lock.
            await self._store.checkpoint()
            return result
        except Exception:
            logger.exception("engine_turn_failed", session_id=session_id, platform=platform)
            try:
                await self._store.discard()
            except Exception as rollback_err:
                logger.error("engine_rollback_failed", session_id=session_id, error=str(rollback_err))
            return EngineResult(response=GENERIC_FAILURE)

    async def _process(
        self,
        session_id: str,
        message: str,
        platform: str,
        metadata: dict[str, Any],
    ) -> EngineResult:
        session = await self._store.get_or_create_session(session_id, platform)

        if platform == PLATFORM_WHATSAPP and not session.phone:
            self._prefill_from_channel(session, metadata)

        await self._store.add_message(session_id, SENDER_USER, message)
        await self._store.checkpoint()

        state = derive_state(session)
        if isinstance(state, AdminControlled):
            logger.info("engine_skipped_admin_control", session_id=session_id)
            return EngineResult(response="", controlled_by=CONTROLLER_ADMIN)

        text = self._remap_option_reply(session, message, platform)
        intent = await self._classifier.classify(text, await self._store.department_names())
        logger.info(
            "engine_turn_classified",
            session_id=session_id,
            platform=platform,
            intent=intent.value,
            state=type(state).__name__,
        )

        if intent == IntentType.MENU:
            session.current_mode = None
            session.current_department = None
            return await self._finalize(session, MENU_HEADER, await self._menu(), platform)

        if is_onboarding(state):
            # The name step consumes any text, exact selections included.
            if isinstance(state, OnboardingName):
                return await self._capture_name(session, text, platform)
            if intent != IntentType.SELECTION:
                return await self._capture_phone(session, text, platform)

        if intent == IntentType.SELECTION:
            return await self._select(session, text, platform)

        if isinstance(state, AiMode) or (
            isinstance(state, MainMenu) and intent == IntentType.QUESTION
        ):
            return await self._answer_as_ai(session, text, platform)

        if isinstance(state, DepartmentMode):
            return await self._answer_as_department(session, state.name, text, platform)

        return await self._finalize(session, NOT_UNDERSTOOD, await self._menu(), platform)

    # -- Pre-routing ----------------------------------------------------------

    @staticmethod
    def _prefill_from_channel(session: ChatSession, metadata: dict[str, Any]) -> None:
        """A WhatsApp identity already carries a phone number; skip onboarding."""
        phone = session.session_id.split("@", 1)[0].strip()
        if not phone:
            logger.warning("whatsapp_prefill_skipped", session_id=session.session_id)
            return
        name = (metadata.get("display_name") or "").strip() or phone
        session.phone = phone
        session.full_name = name
        session.first_name = name.split()[0]
        logger.info("whatsapp_session_prefilled", session_id=session.session_id)

    @staticmethod
    def _remap_option_reply(session: ChatSession, message: str, platform: str) -> str:
        """Map a WhatsApp reply back to the value of an option last sent.

        "2" picks the second option; a tapped button or list row arrives
        as its label ("🛒 Vendas") and picks that option. Anything else,
        out-of-range numbers included, passes through unchanged.
        """
        if platform != PLATFORM_WHATSAPP or not session.last_options:
            return message
        candidate = message.strip()
        if candidate.isdigit():
            position = int(candidate)
            if 1 <= position <= len(session.last_options):
                value = session.last_options[position - 1]["value"]
                logger.debug("numeric_reply_remapped", session_id=session.session_id, position=position)
                return value
            return message
        for option in session.last_options:
            if candidate == option["label"].strip():
                logger.debug("label_reply_remapped", session_id=session.session_id, value=option["value"])
                return option["value"]
        return message

    async def _menu(self) -> list[Option]:
        return menu_options(await self._store.list_departments())

    # -- Onboarding -----------------------------------------------------------

    async def _capture_name(self, session: ChatSession, text: str, platform: str) -> EngineResult:
        full_name = text.strip()
        if not full_name:
            return await self._finalize(session, GREETING, None, platform)
        session.full_name = full_name
        session.first_name = full_name.split()[0]
        logger.info("onboarding_name_captured", session_id=session.session_id)
        reply = PHONE_PROMPT.format(first_name=session.first_name)
        return await self._finalize(session, reply, None, platform)

    async def _capture_phone(self, session: ChatSession, text: str, platform: str) -> EngineResult:
        phone = digits_only(text)
        if not 10 <= len(phone) <= 11:
            logger.info("onboarding_phone_rejected", session_id=session.session_id, digits=len(phone))
            return await self._finalize(session, INVALID_PHONE, None, platform)
        session.phone = phone
        logger.info("onboarding_completed", session_id=session.session_id)
        return await self._finalize(session, ONBOARDED, await self._menu(), platform)

    # -- Routing --------------------------------------------------------------

    async def _select(self, session: ChatSession, text: str, platform: str) -> EngineResult:
        if text == AI_SELECTION:
            session.current_mode = MODE_AI
            session.current_department = None
            return await self._finalize(session, AI_ACK, None, platform)

        department = await self._store.get_department(text)
        if department is None:
            # Removed between classification and lookup.
            return await self._finalize(session, NOT_UNDERSTOOD, await self._menu(), platform)

        if department.type == "human":
            if not department.phone:
                logger.warning("human_department_without_phone", department=department.name)
            reply = HUMAN_REDIRECT.format(name=department.name)
            redirect_url = handoff_link(department.phone or "", department.name)
            session.current_mode = None
            session.current_department = None
            session.last_options = None
            await self._store.add_message(session.session_id, SENDER_BOT, reply)
            await self._store.touch(session)
            logger.info("human_handoff", session_id=session.session_id, department=department.name)
            return EngineResult(response=reply, redirect_url=redirect_url)

        session.current_department = department.name
        session.current_mode = None
        return await self._finalize(session, DEPARTMENT_ACK.format(name=department.name), None, platform)

    async def _context_for(self, question: str) -> str:
        chunks = await self._retrieval.search(question)
        return "\n\n".join(chunk.content for chunk in chunks)

    async def _answer_as_ai(self, session: ChatSession, text: str, platform: str) -> EngineResult:
        if session.current_mode != MODE_AI:
            session.current_mode = MODE_AI
            session.current_department = None
        context = await self._context_for(text)
        instructions = await self._store.system_prompt() or DEFAULT_SYSTEM_PROMPT
        reply = await self._llm.complete(build_prompt(instructions, context, text))
        return await self._finalize(session, reply, None, platform)

    async def _answer_as_department(
        self,
        session: ChatSession,
        department_name: str,
        text: str,
        platform: str,
    ) -> EngineResult:
        department = await self._store.get_department(department_name)
        if department is None:
            logger.warning(
                "parked_department_missing",
                session_id=session.session_id,
                department=department_name,
            )
            session.current_department = None
            return await self._finalize(session, NOT_UNDERSTOOD, await self._menu(), platform)

        context = await self._context_for(text)
        instructions = department.prompt or DEPARTMENT_PROMPT_FALLBACK.format(name=department.name)
        reply = await self._llm.complete(build_prompt(instructions, context, text))
        return await self._finalize(session, reply, None, platform)

    # -- Finalization ---------------------------------------------------------

    async def _finalize(
        self,
        session: ChatSession,
        reply: str,
        options: list[Option] | None,
        platform: str,
    ) -> EngineResult:
        if reply and options and platform == PLATFORM_WHATSAPP:
            reply = render_numbered(reply, options)
        if reply:
            await self._store.add_message(session.session_id, SENDER_BOT, reply)
        session.last_options = list(options) if options else None
        await self._store.touch(session)
        logger.info(
            "engine_turn_complete",
            session_id=session.session_id,
            platform=platform,
            options=len(options) if options else 0,
        )
        return EngineResult(response=reply, options=options)
