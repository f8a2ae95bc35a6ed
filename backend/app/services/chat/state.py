"""Logical conversation state derived from a session's stored fields.

The session row only holds nullable columns (full_name, phone,
current_mode, current_department, controlled_by). derive_state() maps
them to one explicit variant so the engine's precedence rules can be
read and tested without a database.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Union

from app.models.session import CONTROLLER_ADMIN, MODE_AI


class SessionFields(Protocol):
    full_name: str | None
    phone: str | None
    current_mode: str | None
    current_department: str | None
    controlled_by: str | None


@dataclass(frozen=True)
class OnboardingName:
    """Waiting for the user's full name."""


@dataclass(frozen=True)
class OnboardingPhone:
    """Name captured, waiting for a 10–11 digit phone number."""


@dataclass(frozen=True)
class MainMenu:
    """Onboarded, no mode or department selected."""


@dataclass(frozen=True)
class AiMode:
    """Free-form questions answered by the assistant with retrieval context."""


@dataclass(frozen=True)
class DepartmentMode:
    name: str


@dataclass(frozen=True)
class AdminControlled:
    """An operator owns the session. ``resume`` is the state restored on release."""

    resume: AutomatedState


AutomatedState = Union[OnboardingName, OnboardingPhone, MainMenu, AiMode, DepartmentMode]
ConversationState = Union[AutomatedState, AdminControlled]


def automated_state(session: SessionFields) -> AutomatedState:
    """State the engine would act on, ignoring operator control.

    Onboarding wins over any stored mode; AI mode wins over a department
    if both were ever persisted together.
    """
    if not session.full_name:
        return OnboardingName()
    if not session.phone:
        return OnboardingPhone()
    if session.current_mode == MODE_AI:
        return AiMode()
    if session.current_department:
        return DepartmentMode(session.current_department)
    return MainMenu()


def derive_state(session: SessionFields) -> ConversationState:
    resume = automated_state(session)
    if session.controlled_by == CONTROLLER_ADMIN:
        return AdminControlled(resume=resume)
    return resume


def is_onboarding(state: ConversationState) -> bool:
    return isinstance(state, (OnboardingName, OnboardingPhone))
