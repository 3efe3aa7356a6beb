"""Chat front end: messaging channel, callback commands and handlers."""

from .app import GroceryBot, is_authorized
from .channel import (
    CallbackQuery,
    IncomingMessage,
    InlineButton,
    Keyboard,
    MessagingChannel,
    User,
)
from .handlers import BotHandlers
from .telegram import TelegramChannel, TelegramError, parse_update

__all__ = [
    "GroceryBot",
    "is_authorized",
    "BotHandlers",
    "MessagingChannel",
    "InlineButton",
    "Keyboard",
    "User",
    "IncomingMessage",
    "CallbackQuery",
    "TelegramChannel",
    "TelegramError",
    "parse_update",
]
