"""Messaging channel abstraction and the transport-neutral event types."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class InlineButton:
    text: str
    callback_data: str


Keyboard = list[list[InlineButton]]


@dataclass
class User:
    id: int
    username: str = ""
    first_name: str = ""

    @property
    def display_name(self) -> str:
        return self.username or self.first_name or "Unknown"


@dataclass
class IncomingMessage:
    chat_id: int
    message_id: int
    text: str
    user: User | None = None
    reply_to_message_id: int | None = None


@dataclass
class CallbackQuery:
    id: str
    chat_id: int
    message_id: int
    data: str
    user: User | None = None


class MessagingChannel(ABC):
    """Outbound operations of a chat transport.

    Message texts are HTML formatted.
    """

    @abstractmethod
    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        keyboard: Keyboard | None = None,
        force_reply: bool = False,
    ) -> int:
        """Send a message and return its message id."""
        ...

    @abstractmethod
    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        *,
        keyboard: Keyboard | None = None,
    ) -> None: ...

    @abstractmethod
    async def edit_message_reply_markup(
        self, chat_id: int, message_id: int, keyboard: Keyboard | None = None
    ) -> None: ...

    @abstractmethod
    async def delete_message(self, chat_id: int, message_id: int) -> None: ...

    @abstractmethod
    async def answer_callback(
        self, callback_id: str, text: str = "", *, show_alert: bool = False
    ) -> None:
        """Acknowledge a button press, optionally with a toast."""
        ...
