"""WhatsApp outbound transport interface.

The conversation engine never talks to a WhatsApp gateway directly; it
returns (text, options) and the channel adapter hands them to a
WhatsAppTransport, which decides how options are rendered.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Literal, Sequence

from app.services.chat.texts import Option

RenderMode = Literal["buttons", "list", "text"]

MAX_REPLY_BUTTONS = 3


def render_mode(options: Sequence[Option] | None) -> RenderMode:
    """1–3 options as reply buttons, more as a selectable list, none as plain text."""
    if not options:
        return "text"
    if len(options) <= MAX_REPLY_BUTTONS:
        return "buttons"
    return "list"


def chat_phone(chat_id: str) -> str:
    """'5511999999999@c.us' -> '5511999999999'."""
    return chat_id.split("@", 1)[0]


class WhatsAppTransport(ABC):
    """Send-side boundary of the WhatsApp channel."""

    @abstractmethod
    async def send(self, to: str, text: str, options: Sequence[Option] | None = None) -> None:
        """Deliver ``text`` to chat ``to``, with options rendered per render_mode().

        Raises:
            WhatsAppError: delivery failed after retries.
        """
