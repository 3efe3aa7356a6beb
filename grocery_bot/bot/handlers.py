"""Message, slash-command and callback handlers wired to the core."""

from __future__ import annotations

import logging

from ..batch import BatchManager
from ..cache import ProductCache
from ..db import SessionStore
from ..errors import NotFoundError, ParsingFailedError
from ..shopping import CategoryList, ShoppingNavigator, View
from . import formatter
from .channel import CallbackQuery, IncomingMessage, InlineButton, Keyboard, MessagingChannel
from .commands import (
    AdvanceItem,
    BackToBatch,
    CancelBatch,
    CancelItem,
    ClearFound,
    ClearSelection,
    Command,
    ConfirmBatch,
    ConfirmItem,
    EditDraft,
    EditItem,
    EditNote,
    MarkNotFound,
    Noop,
    NoteReply,
    Refresh,
    SaveEdit,
    ShowCategories,
    ShowCategory,
    decode_command,
    encode_command,
    origins_by_id,
    view_for,
)

logger = logging.getLogger(__name__)


class BotHandlers:
    """Turns chat events into core operations and renders the results.

    Every callback is answered exactly once, whatever happens.
    """

    def __init__(
        self,
        channel: MessagingChannel,
        batches: BatchManager,
        navigator: ShoppingNavigator,
        sessions: SessionStore,
        cache: ProductCache,
    ) -> None:
        self._channel = channel
        self._batches = batches
        self._navigator = navigator
        self._sessions = sessions
        self._cache = cache

    # --- Rendering ---

    def _keyboard(
        self, chat_id: int, message_id: int, rows: list[formatter.ButtonRow]
    ) -> Keyboard:
        """Issue fresh tokens for a message, dropping the ones it had."""
        self._sessions.delete_by_message(message_id, chat_id)
        return [
            [
                InlineButton(
                    text=label,
                    callback_data=self._sessions.create(
                        message_id, encode_command(command, chat_id)
                    ),
                )
                for label, command in row
            ]
            for row in rows
        ]

    async def _render(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        rows: list[formatter.ButtonRow],
    ) -> None:
        if rows:
            keyboard = self._keyboard(chat_id, message_id, rows)
        else:
            self._sessions.delete_by_message(message_id, chat_id)
            keyboard = None
        await self._channel.edit_message_text(
            chat_id, message_id, text, keyboard=keyboard
        )

    async def _render_batch(
        self, chat_id: int, message_id: int, batch_id: str, origins: dict[str, str]
    ) -> None:
        items = self._batches.batch_items(batch_id)
        await self._render(
            chat_id,
            message_id,
            formatter.batch_text(items),
            formatter.batch_keyboard(batch_id, items, origins),
        )

    async def _render_edit(self, chat_id: int, message_id: int, draft: EditDraft) -> None:
        item = self._batches.get_item(draft.item_id)
        await self._render(
            chat_id,
            message_id,
            formatter.edit_text(item, draft.category, draft.quantity, draft.note),
            formatter.edit_keyboard(draft),
        )

    async def _render_shop(self, chat_id: int, message_id: int, view: View) -> None:
        shopping = self._navigator.list_by_category_grouped()
        view = self._navigator.resolve_view(view, shopping)
        text, rows = formatter.shopping_view(view, shopping)
        await self._render(chat_id, message_id, text, rows)

    async def _send_with_keyboard(
        self, chat_id: int, text: str, rows: list[formatter.ButtonRow]
    ) -> int:
        """Send a new message, then attach buttons once its id is known."""
        message_id = await self._channel.send_message(chat_id, text)
        if rows:
            await self._channel.edit_message_reply_markup(
                chat_id, message_id, self._keyboard(chat_id, message_id, rows)
            )
        return message_id

    # --- Messages ---

    async def handle_message(self, message: IncomingMessage) -> None:
        text = message.text.strip()
        if not text:
            return
        if text.startswith("/"):
            await self.handle_command(message, text)
            return
        if message.reply_to_message_id is not None and await self._handle_note_reply(
            message, text
        ):
            return
        await self._handle_list_text(message, text)

    async def _handle_list_text(self, message: IncomingMessage, text: str) -> None:
        chat_id = message.chat_id
        placeholder = await self._channel.send_message(chat_id, formatter.PARSING_TEXT)
        try:
            batch = await self._batches.create_from_text(text)
            if not batch.items:
                await self._channel.edit_message_text(
                    chat_id, placeholder, formatter.no_items_text(batch.dropped)
                )
                return

            origins = {str(item_id): line for item_id, line in batch.origins.items()}
            await self._render(
                chat_id,
                placeholder,
                formatter.batch_text(batch.items, batch.dropped),
                formatter.batch_keyboard(batch.batch_id, batch.items, origins),
            )
        except ParsingFailedError as e:
            logger.warning("Parsing failed for chat %s: %s", chat_id, e)
            await self._channel.edit_message_text(
                chat_id, placeholder, formatter.PARSE_FAILED_TEXT
            )
        except Exception:
            logger.exception("Could not build batch for chat %s", chat_id)
            await self._channel.edit_message_text(chat_id, placeholder, formatter.ERROR_TEXT)

    async def _handle_note_reply(self, message: IncomingMessage, text: str) -> bool:
        """Apply a reply to a note prompt. Returns False if it was not one."""
        chat_id = message.chat_id
        prompt_id = message.reply_to_message_id
        try:
            reply = self._find_note_reply(prompt_id, chat_id)
            if reply is None:
                return False

            self._sessions.delete_by_message(prompt_id, chat_id)
            draft = EditDraft(
                reply.batch_id,
                reply.item_id,
                reply.category,
                reply.quantity,
                text,
                reply.origins,
            )
            try:
                await self._render_edit(chat_id, reply.edit_message_id, draft)
            except NotFoundError:
                await self._channel.send_message(chat_id, formatter.STALE_TEXT)
            await self._channel.delete_message(chat_id, prompt_id)
        except Exception:
            logger.exception("Note reply failed for chat %s", chat_id)
            await self._channel.send_message(chat_id, formatter.ERROR_TEXT)
        return True

    def _find_note_reply(self, prompt_id: int, chat_id: int) -> NoteReply | None:
        for payload in self._sessions.list_by_message(prompt_id, chat_id):
            try:
                command = decode_command(payload)
            except ValueError:
                continue
            if isinstance(command, NoteReply):
                return command
        return None

    async def handle_command(self, message: IncomingMessage, text: str) -> None:
        # "/shop@MyBot args" -> "shop"
        name = text.split()[0][1:].split("@")[0].lower()
        chat_id = message.chat_id
        try:
            match name:
                case "start" | "help":
                    await self._channel.send_message(chat_id, formatter.HELP_TEXT)
                case "shop":
                    shopping = self._navigator.list_by_category_grouped()
                    text, rows = formatter.shopping_view(CategoryList(), shopping)
                    await self._send_with_keyboard(chat_id, text, rows)
                case "list":
                    shopping = self._navigator.list_by_category_grouped()
                    await self._channel.send_message(
                        chat_id, formatter.grocery_list_text(shopping)
                    )
                case "clear":
                    count = self._navigator.clear_all()
                    await self._channel.send_message(chat_id, formatter.cleared_text(count))
                case "stats":
                    await self._channel.send_message(
                        chat_id, formatter.stats_text(self._cache.stats())
                    )
                case _:
                    await self._channel.send_message(
                        chat_id, f"Unknown command /{name}. Try /help."
                    )
        except Exception:
            logger.exception("Command /%s failed for chat %s", name, chat_id)
            await self._channel.send_message(chat_id, formatter.ERROR_TEXT)

    # --- Callbacks ---

    async def handle_callback(self, query: CallbackQuery) -> None:
        """Run a button press and answer it exactly once."""
        try:
            toast = await self._run_callback(query)
        except Exception:
            logger.exception("Callback %s failed in chat %s", query.data, query.chat_id)
            toast = formatter.ERROR_TEXT
        await self._channel.answer_callback(query.id, toast)

    async def _run_callback(self, query: CallbackQuery) -> str:
        payload = self._sessions.get(query.data)
        if payload is None or payload.get("chat_id") != query.chat_id:
            logger.info("Stale callback token %s in chat %s", query.data, query.chat_id)
            return formatter.STALE_TEXT

        try:
            command = decode_command(payload)
        except ValueError as e:
            logger.warning("Undecodable callback payload: %s", e)
            return formatter.STALE_TEXT

        try:
            return await self._dispatch(query, command)
        except NotFoundError as e:
            logger.info("Callback %s on a stale target: %s", command.action, e)
            return "Already handled."
        except ParsingFailedError:
            return formatter.PARSE_FAILED_TEXT

    async def _dispatch(self, query: CallbackQuery, command: Command) -> str:
        """Run one command and re-render its message. Returns the toast text."""
        chat_id, message_id = query.chat_id, query.message_id
        match command:
            case ConfirmItem(batch_id=batch_id, item_id=item_id, origins=origins):
                line = origins_by_id(origins).get(item_id)
                item = self._batches.confirm_item(batch_id, item_id, line)
                await self._render_batch(chat_id, message_id, batch_id, origins)
                return f"Added {item.name}"
            case CancelItem(batch_id=batch_id, item_id=item_id, origins=origins):
                item = self._batches.cancel_item(batch_id, item_id)
                await self._render_batch(chat_id, message_id, batch_id, origins)
                return f"Removed {item.name}"
            case ConfirmBatch(batch_id=batch_id, origins=origins):
                committed = self._batches.confirm_batch(batch_id, origins_by_id(origins))
                await self._render_batch(chat_id, message_id, batch_id, origins)
                return f"Added {len(committed)} item(s)"
            case CancelBatch(batch_id=batch_id):
                count = self._batches.cancel_batch(batch_id)
                await self._render_batch(chat_id, message_id, batch_id, {})
                return f"Cancelled {count} item(s)"
            case EditItem(batch_id=batch_id, item_id=item_id, origins=origins):
                item = self._batches.get_item(item_id)
                draft = EditDraft(
                    batch_id, item_id, item.category, item.quantity, item.note, origins
                )
                await self._render_edit(chat_id, message_id, draft)
                return ""
            case EditDraft():
                await self._render_edit(chat_id, message_id, command)
                return ""
            case EditNote():
                item = self._batches.get_item(command.item_id)
                prompt_id = await self._channel.send_message(
                    chat_id, formatter.note_prompt_text(item.name), force_reply=True
                )
                reply = NoteReply(
                    command.batch_id,
                    command.item_id,
                    command.category,
                    command.quantity,
                    message_id,
                    command.note,
                    command.origins,
                )
                self._sessions.create(prompt_id, encode_command(reply, chat_id))
                return ""
            case SaveEdit():
                item = self._batches.edit_item(
                    command.item_id, command.category, command.quantity, command.note
                )
                await self._render_batch(
                    chat_id, message_id, command.batch_id, command.origins
                )
                return f"Saved {item.name}"
            case BackToBatch(batch_id=batch_id, origins=origins):
                await self._render_batch(chat_id, message_id, batch_id, origins)
                return ""
            case ShowCategories():
                await self._render_shop(chat_id, message_id, CategoryList())
                return ""
            case ShowCategory(category=category):
                await self._render_shop(chat_id, message_id, view_for(category))
                return ""
            case AdvanceItem(item_id=item_id, category=category):
                status = self._navigator.advance_status(item_id)
                await self._render_shop(chat_id, message_id, view_for(category))
                return status.replace("_", " ").capitalize()
            case MarkNotFound(item_id=item_id, category=category):
                self._navigator.mark_not_found(item_id)
                await self._render_shop(chat_id, message_id, view_for(category))
                return "Marked as not found"
            case ClearFound(category=category):
                count = self._navigator.clear_found()
                await self._render_shop(chat_id, message_id, view_for(category))
                return f"Cleared {count} found item(s)"
            case ClearSelection(category=category):
                count = self._navigator.clear_selection()
                await self._render_shop(chat_id, message_id, view_for(category))
                return f"Reset {count} item(s)"
            case Refresh(category=category):
                await self._render_shop(chat_id, message_id, view_for(category))
                return "Refreshed"
            case NoteReply():
                # Only reachable through a reply message, never a button
                return ""
            case Noop():
                return ""
        raise ValueError(f"Unhandled command: {command!r}")

