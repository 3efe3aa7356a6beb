"""Telegram Bot API channel over httpx, plus update parsing."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .channel import CallbackQuery, IncomingMessage, Keyboard, MessagingChannel, User

logger = logging.getLogger(__name__)

API_BASE = "https://api.telegram.org"

# Editing a message to identical content is rejected by the API
_NOT_MODIFIED = "message is not modified"


class TelegramError(RuntimeError):
    """Raised when a Bot API call fails or returns ok=false."""

    def __init__(self, method: str, description: str) -> None:
        super().__init__(f"{method}: {description}")
        self.method = method
        self.description = description


def _reply_markup(keyboard: Keyboard | None) -> dict:
    return {
        "inline_keyboard": [
            [{"text": b.text, "callback_data": b.callback_data} for b in row]
            for row in (keyboard or [])
        ]
    }


def _user(data: dict | None) -> User | None:
    if not data:
        return None
    return User(
        id=data.get("id", 0),
        username=data.get("username", ""),
        first_name=data.get("first_name", ""),
    )


def parse_update(update: dict) -> IncomingMessage | CallbackQuery | None:
    """Turn a raw ``getUpdates`` entry into a channel event.

    Returns None for update kinds the bot does not handle.
    """
    if "callback_query" in update:
        cq = update["callback_query"]
        message = cq.get("message") or {}
        if not message or "data" not in cq:
            return None
        return CallbackQuery(
            id=cq["id"],
            chat_id=message["chat"]["id"],
            message_id=message["message_id"],
            data=cq["data"],
            user=_user(cq.get("from")),
        )

    message = update.get("message")
    if message and "text" in message:
        reply_to = message.get("reply_to_message") or {}
        return IncomingMessage(
            chat_id=message["chat"]["id"],
            message_id=message["message_id"],
            text=message["text"],
            user=_user(message.get("from")),
            reply_to_message_id=reply_to.get("message_id"),
        )
    return None


class TelegramChannel(MessagingChannel):
    """Messaging channel backed by the Telegram Bot API.

    Args:
        token: Bot token from @BotFather.
        client: Optional preconfigured ``httpx.AsyncClient`` (tests pass one
            with a mock transport).
    """

    def __init__(
        self,
        token: str,
        *,
        client: httpx.AsyncClient | None = None,
        base_url: str = API_BASE,
        timeout: float = 60.0,
    ) -> None:
        if not token:
            raise ValueError(
                "Telegram token is not set. Set it in config.toml or the "
                "TELEGRAM_TOKEN environment variable."
            )
        self._base = f"{base_url}/bot{token}"
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, **params: Any) -> Any:
        payload = {k: v for k, v in params.items() if v is not None}
        try:
            response = await self._client.post(f"{self._base}/{method}", json=payload)
            data = response.json()
        except httpx.HTTPError as e:
            raise TelegramError(method, str(e)) from e
        except ValueError as e:
            raise TelegramError(method, f"invalid JSON response: {e}") from e

        if not data.get("ok"):
            raise TelegramError(method, data.get("description", "unknown error"))
        return data.get("result")

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        keyboard: Keyboard | None = None,
        force_reply: bool = False,
    ) -> int:
        markup = None
        if force_reply:
            markup = {"force_reply": True, "selective": True}
        elif keyboard:
            markup = _reply_markup(keyboard)
        result = await self._call(
            "sendMessage",
            chat_id=chat_id,
            text=text,
            parse_mode="HTML",
            reply_markup=markup,
        )
        return result["message_id"]

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        *,
        keyboard: Keyboard | None = None,
    ) -> None:
        try:
            await self._call(
                "editMessageText",
                chat_id=chat_id,
                message_id=message_id,
                text=text,
                parse_mode="HTML",
                reply_markup=_reply_markup(keyboard),
            )
        except TelegramError as e:
            if _NOT_MODIFIED not in e.description:
                raise
            logger.debug("Message %d unchanged", message_id)

    async def edit_message_reply_markup(
        self, chat_id: int, message_id: int, keyboard: Keyboard | None = None
    ) -> None:
        try:
            await self._call(
                "editMessageReplyMarkup",
                chat_id=chat_id,
                message_id=message_id,
                reply_markup=_reply_markup(keyboard),
            )
        except TelegramError as e:
            if _NOT_MODIFIED not in e.description:
                raise

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        await self._call("deleteMessage", chat_id=chat_id, message_id=message_id)

    async def answer_callback(
        self, callback_id: str, text: str = "", *, show_alert: bool = False
    ) -> None:
        await self._call(
            "answerCallbackQuery",
            callback_query_id=callback_id,
            text=text or None,
            show_alert=show_alert,
        )

    async def get_updates(self, offset: int | None = None, timeout: int = 30) -> list[dict]:
        """Long-poll for new updates."""
        return await self._call(
            "getUpdates",
            offset=offset,
            timeout=timeout,
            allowed_updates=["message", "callback_query"],
        )
