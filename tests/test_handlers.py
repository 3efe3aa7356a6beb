"""Tests for the bot handlers against an in-memory channel."""

import pytest

from grocery_bot.ai import ItemParser
from grocery_bot.batch import BatchManager
from grocery_bot.bot import formatter
from grocery_bot.bot.channel import CallbackQuery, IncomingMessage, MessagingChannel, User
from grocery_bot.bot.handlers import BotHandlers
from grocery_bot.cache import ProductCache
from grocery_bot.db import ItemStore, SessionStore
from grocery_bot.errors import ParsingFailedError, StoreError
from grocery_bot.models import CONFIRMING, FOUND, PENDING, SELECTED, ParsedItem
from grocery_bot.pipeline import ParsingPipeline
from grocery_bot.shopping import ShoppingNavigator

CHAT = 1000


class FakeParser(ItemParser):
    def __init__(self):
        self.items: list[ParsedItem] = []
        self.error: Exception | None = None

    async def parse(self, text):
        if self.error is not None:
            raise self.error
        return [ParsedItem(i.name, i.quantity, i.category) for i in self.items]


class FakeChannel(MessagingChannel):
    """Keeps the latest text and keyboard of every message."""

    def __init__(self):
        self.messages: dict[int, dict] = {}
        self.answers: list[tuple[str, str, bool]] = []
        self.deleted: list[int] = []
        self._next_id = 1

    async def send_message(self, chat_id, text, *, keyboard=None, force_reply=False):
        message_id = self._next_id
        self._next_id += 1
        self.messages[message_id] = {
            "chat_id": chat_id,
            "text": text,
            "keyboard": keyboard,
            "force_reply": force_reply,
        }
        return message_id

    async def edit_message_text(self, chat_id, message_id, text, *, keyboard=None):
        self.messages[message_id].update(text=text, keyboard=keyboard)

    async def edit_message_reply_markup(self, chat_id, message_id, keyboard=None):
        self.messages[message_id]["keyboard"] = keyboard

    async def delete_message(self, chat_id, message_id):
        self.deleted.append(message_id)
        self.messages.pop(message_id, None)

    async def answer_callback(self, callback_id, text="", *, show_alert=False):
        self.answers.append((callback_id, text, show_alert))

    @property
    def last_id(self) -> int:
        return self._next_id - 1

    def button(self, message_id: int, label: str) -> str:
        """Token of the first button on a message whose label contains ``label``."""
        for row in self.messages[message_id]["keyboard"] or []:
            for button in row:
                if label in button.text:
                    return button.callback_data
        raise AssertionError(f"no button {label!r} on message {message_id}")

    def labels(self, message_id: int) -> list[str]:
        return [b.text for row in self.messages[message_id]["keyboard"] or [] for b in row]


@pytest.fixture
def parser():
    return FakeParser()


@pytest.fixture
def stores(tmp_path):
    items = ItemStore(tmp_path / "bot.db")
    sessions = SessionStore(tmp_path / "bot.db")
    yield items, sessions
    items.close()
    sessions.close()


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def cache(tmp_path):
    return ProductCache(tmp_path / "cache.json")


@pytest.fixture
def handlers(stores, channel, parser, cache):
    items, sessions = stores
    pipeline = ParsingPipeline(cache, parser)
    return BotHandlers(
        channel=channel,
        batches=BatchManager(items, pipeline),
        navigator=ShoppingNavigator(items),
        sessions=sessions,
        cache=cache,
    )


def _message(text, reply_to=None):
    return IncomingMessage(
        chat_id=CHAT,
        message_id=500,
        text=text,
        user=User(id=1, username="alice"),
        reply_to_message_id=reply_to,
    )


_query_counter = 0


async def _press(handlers, channel, message_id, token, chat_id=CHAT):
    global _query_counter
    _query_counter += 1
    query_id = f"q{_query_counter}"
    await handlers.handle_callback(
        CallbackQuery(id=query_id, chat_id=chat_id, message_id=message_id, data=token)
    )
    answers = [a for a in channel.answers if a[0] == query_id]
    assert len(answers) == 1, "every callback is answered exactly once"
    return answers[0][1]


async def _submit(handlers, channel, parser, text, items):
    parser.items = items
    await handlers.handle_message(_message(text))
    return channel.last_id


class TestListSubmission:
    @pytest.mark.asyncio
    async def test_batch_message_rendered(self, handlers, channel, parser, stores):
        mid = await _submit(handlers, channel, parser, "2 lai\npin", [
            ParsedItem("lait", 2, "Produits laitiers"),
            ParsedItem("pain", 1, "Boulangerie"),
        ])

        msg = channel.messages[mid]
        assert "lait" in msg["text"]
        assert "pain" in msg["text"]
        labels = channel.labels(mid)
        assert "✅ lait x2" in labels
        assert "✅ Confirm all" in labels
        items, sessions = stores
        assert all(i.status == CONFIRMING for i in items.list_all())
        assert len(sessions.list_by_message(mid)) == len(labels)

    @pytest.mark.asyncio
    async def test_parse_failure_shows_retry(self, handlers, channel, parser, stores):
        parser.error = ParsingFailedError("AI down")
        await handlers.handle_message(_message("lai"))

        assert channel.messages[channel.last_id]["text"] == formatter.PARSE_FAILED_TEXT
        assert stores[0].list_all() == []

    @pytest.mark.asyncio
    async def test_nothing_parsed(self, handlers, channel, parser):
        await _submit(handlers, channel, parser, "???", [ParsedItem("", 1, "Unknown")])
        assert "No valid grocery items" in channel.messages[channel.last_id]["text"]

    @pytest.mark.asyncio
    async def test_blank_message_ignored(self, handlers, channel):
        await handlers.handle_message(_message("   "))
        assert channel.messages == {}


class TestBatchCallbacks:
    @pytest.mark.asyncio
    async def test_confirm_item_and_replay(self, handlers, channel, parser, stores, cache):
        mid = await _submit(handlers, channel, parser, "2 lai\npin", [
            ParsedItem("lait", 2, "Produits laitiers"),
            ParsedItem("pain", 1, "Boulangerie"),
        ])
        token = channel.button(mid, "✅ lait")

        toast = await _press(handlers, channel, mid, token)

        assert toast == "Added lait"
        items = {i.name: i for i in stores[0].list_all()}
        assert items["lait"].status == PENDING
        assert items["pain"].status == CONFIRMING
        assert cache.lookup("lai").canonical_name == "lait"
        assert "✅ lait x2" not in channel.labels(mid)

        # The old button was re-issued and no longer resolves
        assert await _press(handlers, channel, mid, token) == formatter.STALE_TEXT

    @pytest.mark.asyncio
    async def test_confirm_all(self, handlers, channel, parser, stores):
        mid = await _submit(handlers, channel, parser, "lai\npin", [
            ParsedItem("lait", 1, "Produits laitiers"),
            ParsedItem("pain", 1, "Boulangerie"),
        ])
        toast = await _press(handlers, channel, mid, channel.button(mid, "Confirm all"))

        assert toast == "Added 2 item(s)"
        assert [i.status for i in stores[0].list_all()] == [PENDING, PENDING]
        assert channel.messages[mid]["keyboard"] is None
        assert "All items handled" in channel.messages[mid]["text"]

    @pytest.mark.asyncio
    async def test_cancel_all_after_partial_confirm(self, handlers, channel, parser, stores):
        mid = await _submit(handlers, channel, parser, "a\nb\nc", [
            ParsedItem("a", 1, "Épicerie"),
            ParsedItem("b", 1, "Épicerie"),
            ParsedItem("c", 1, "Épicerie"),
        ])
        await _press(handlers, channel, mid, channel.button(mid, "✅ a"))
        toast = await _press(handlers, channel, mid, channel.button(mid, "Cancel all"))

        assert toast == "Cancelled 2 item(s)"
        assert [i.name for i in stores[0].list_all()] == ["a"]

    @pytest.mark.asyncio
    async def test_cancel_item(self, handlers, channel, parser, stores):
        mid = await _submit(handlers, channel, parser, "a\nb", [
            ParsedItem("a", 1, "Épicerie"),
            ParsedItem("b", 1, "Épicerie"),
        ])
        rows = channel.messages[mid]["keyboard"]
        cancel_a = rows[0][2].callback_data

        assert await _press(handlers, channel, mid, cancel_a) == "Removed a"
        assert [i.name for i in stores[0].list_all()] == ["b"]

    @pytest.mark.asyncio
    async def test_batch_purged_elsewhere_is_acknowledged(self, handlers, channel, parser, stores):
        mid = await _submit(handlers, channel, parser, "a", [ParsedItem("a", 1, "Épicerie")])
        token = channel.button(mid, "✅ a")
        stores[0].delete_committed()
        stores[0].delete_by_status(CONFIRMING)

        assert await _press(handlers, channel, mid, token) == "Already handled."


class TestEditFlow:
    @pytest.mark.asyncio
    async def test_edit_quantity_category_and_save(self, handlers, channel, parser, stores):
        mid = await _submit(handlers, channel, parser, "lai", [
            ParsedItem("lait", 1, "Épicerie"),
        ])
        await _press(handlers, channel, mid, channel.button(mid, "✏️"))
        assert "Quantity: 1" in channel.messages[mid]["text"]

        await _press(handlers, channel, mid, channel.button(mid, "➕"))
        await _press(handlers, channel, mid, channel.button(mid, "➕"))
        await _press(handlers, channel, mid, channel.button(mid, "Produits laitiers"))
        assert "Quantity: 3" in channel.messages[mid]["text"]
        assert "• Produits laitiers" in channel.labels(mid)
        # Drafts are not saved yet
        assert stores[0].list_all()[0].quantity == 1

        toast = await _press(handlers, channel, mid, channel.button(mid, "Save"))

        item = stores[0].list_all()[0]
        assert toast == "Saved lait"
        assert item.quantity == 3
        assert item.category == "Produits laitiers"
        assert item.status == CONFIRMING
        assert "✅ lait x3" in channel.labels(mid)

    @pytest.mark.asyncio
    async def test_quantity_minus_stops_at_one(self, handlers, channel, parser):
        mid = await _submit(handlers, channel, parser, "lai", [ParsedItem("lait", 1, "Épicerie")])
        await _press(handlers, channel, mid, channel.button(mid, "✏️"))
        await _press(handlers, channel, mid, channel.button(mid, "➖"))
        assert "Quantity: 1" in channel.messages[mid]["text"]

    @pytest.mark.asyncio
    async def test_back_discards_draft(self, handlers, channel, parser, stores):
        mid = await _submit(handlers, channel, parser, "lai", [ParsedItem("lait", 1, "Épicerie")])
        await _press(handlers, channel, mid, channel.button(mid, "✏️"))
        await _press(handlers, channel, mid, channel.button(mid, "➕"))
        await _press(handlers, channel, mid, channel.button(mid, "Back"))

        assert stores[0].list_all()[0].quantity == 1
        assert "✅ lait" in channel.labels(mid)

    @pytest.mark.asyncio
    async def test_note_reply(self, handlers, channel, parser, stores):
        mid = await _submit(handlers, channel, parser, "lai", [ParsedItem("lait", 1, "Épicerie")])
        await _press(handlers, channel, mid, channel.button(mid, "✏️"))
        await _press(handlers, channel, mid, channel.button(mid, "Note"))

        prompt_id = channel.last_id
        assert channel.messages[prompt_id]["force_reply"] is True

        await handlers.handle_message(_message("demi-écrémé", reply_to=prompt_id))

        assert prompt_id in channel.deleted
        assert "demi-écrémé" in channel.messages[mid]["text"]
        await _press(handlers, channel, mid, channel.button(mid, "Save"))
        assert stores[0].list_all()[0].note == "demi-écrémé"

    @pytest.mark.asyncio
    async def test_reply_to_other_message_is_a_new_list(self, handlers, channel, parser, stores):
        parser.items = [ParsedItem("riz", 1, "Épicerie")]
        await handlers.handle_message(_message("riz", reply_to=9999))
        assert [i.name for i in stores[0].list_all()] == ["riz"]


class TestShopping:
    async def _shop(self, handlers, channel):
        await handlers.handle_message(_message("/shop"))
        return channel.last_id

    def _seed(self, stores):
        items = stores[0]
        items.add_items(
            [
                ParsedItem("pain", 1, "Boulangerie"),
                ParsedItem("lait", 2, "Produits laitiers"),
                ParsedItem("beurre", 1, "Produits laitiers"),
            ],
            status=PENDING,
        )

    @pytest.mark.asyncio
    async def test_category_list_and_detail(self, handlers, channel, stores):
        self._seed(stores)
        mid = await self._shop(handlers, channel)

        labels = channel.labels(mid)
        assert labels[:2] == ["Boulangerie (1)", "Produits laitiers (2)"]
        assert "🔄 Refresh" in labels
        assert "🧹 Clear found" not in labels

        await _press(handlers, channel, mid, channel.button(mid, "Produits laitiers"))
        assert "• lait x2" in channel.labels(mid)
        assert "⬅️ Categories" in channel.labels(mid)

    @pytest.mark.asyncio
    async def test_tap_cycle_in_detail_view(self, handlers, channel, stores):
        self._seed(stores)
        mid = await self._shop(handlers, channel)
        await _press(handlers, channel, mid, channel.button(mid, "Produits laitiers"))

        assert await _press(handlers, channel, mid, channel.button(mid, "lait")) == "Selected"
        assert "➡️ lait x2" in channel.labels(mid)
        assert "🚫 Not found" in channel.labels(mid)

        assert await _press(handlers, channel, mid, channel.button(mid, "lait")) == "Found"
        assert not any("lait" in label for label in channel.labels(mid))
        assert "🧹 Clear found" in channel.labels(mid)

    @pytest.mark.asyncio
    async def test_last_item_found_returns_to_list(self, handlers, channel, stores):
        self._seed(stores)
        mid = await self._shop(handlers, channel)
        await _press(handlers, channel, mid, channel.button(mid, "Boulangerie"))
        await _press(handlers, channel, mid, channel.button(mid, "pain"))
        await _press(handlers, channel, mid, channel.button(mid, "pain"))

        labels = channel.labels(mid)
        assert "Produits laitiers (2)" in labels
        assert not any(label.startswith("Boulangerie") for label in labels)

    @pytest.mark.asyncio
    async def test_mark_not_found(self, handlers, channel, stores):
        self._seed(stores)
        mid = await self._shop(handlers, channel)
        await _press(handlers, channel, mid, channel.button(mid, "Boulangerie"))
        await _press(handlers, channel, mid, channel.button(mid, "pain"))
        await _press(handlers, channel, mid, channel.button(mid, "Not found"))

        assert "🚫 pain" in channel.labels(mid)
        await _press(handlers, channel, mid, channel.button(mid, "pain"))
        assert "• pain" in channel.labels(mid)

    @pytest.mark.asyncio
    async def test_clear_found_and_selection(self, handlers, channel, stores):
        self._seed(stores)
        items = stores[0]
        pain, lait, _ = items.list_all()
        items.update_status(pain.id, FOUND)
        items.update_status(lait.id, SELECTED)
        mid = await self._shop(handlers, channel)

        assert await _press(
            handlers, channel, mid, channel.button(mid, "Clear found")
        ) == "Cleared 1 found item(s)"
        assert await _press(
            handlers, channel, mid, channel.button(mid, "Clear selection")
        ) == "Reset 1 item(s)"
        assert [i.status for i in items.list_all()] == [PENDING, PENDING]

    @pytest.mark.asyncio
    async def test_empty_list(self, handlers, channel):
        mid = await self._shop(handlers, channel)
        assert "empty" in channel.messages[mid]["text"]


class TestCallbackSafety:
    @pytest.mark.asyncio
    async def test_unknown_token(self, handlers, channel):
        assert await _press(handlers, channel, 1, "deadbeef") == formatter.STALE_TEXT

    @pytest.mark.asyncio
    async def test_token_from_another_chat(self, handlers, channel, stores):
        stores[0].add_items([ParsedItem("pain", 1, "Boulangerie")], status=PENDING)
        await handlers.handle_message(_message("/shop"))
        mid = channel.last_id
        token = channel.button(mid, "Refresh")

        assert await _press(handlers, channel, mid, token, chat_id=CHAT + 1) == formatter.STALE_TEXT

    @pytest.mark.asyncio
    async def test_store_failure_acknowledged(self, handlers, channel, stores, monkeypatch):
        stores[0].add_items([ParsedItem("pain", 1, "Boulangerie")], status=PENDING)
        await handlers.handle_message(_message("/shop"))
        mid = channel.last_id

        def broken(*args, **kwargs):
            raise StoreError("disk full")

        monkeypatch.setattr(handlers._navigator, "clear_selection", broken)
        toast = await _press(handlers, channel, mid, channel.button(mid, "Clear selection"))
        assert toast == formatter.ERROR_TEXT

    @pytest.mark.asyncio
    async def test_token_lookup_failure_acknowledged(self, handlers, channel, monkeypatch):
        def locked(token):
            raise StoreError("database is locked")

        monkeypatch.setattr(handlers._sessions, "get", locked)
        assert await _press(handlers, channel, 1, "deadbeef") == formatter.ERROR_TEXT

    @pytest.mark.asyncio
    async def test_render_failure_after_parse_replaces_placeholder(
        self, handlers, channel, parser, monkeypatch
    ):
        def locked(*args, **kwargs):
            raise StoreError("database is locked")

        monkeypatch.setattr(handlers._sessions, "delete_by_message", locked)
        mid = await _submit(handlers, channel, parser, "lai", [ParsedItem("lait", 1, "Épicerie")])
        assert channel.messages[mid]["text"] == formatter.ERROR_TEXT

    @pytest.mark.asyncio
    async def test_note_reply_failure_answered(self, handlers, channel, monkeypatch):
        def locked(*args, **kwargs):
            raise StoreError("database is locked")

        monkeypatch.setattr(handlers._sessions, "list_by_message", locked)
        await handlers.handle_message(_message("demi-écrémé", reply_to=42))
        assert channel.messages[channel.last_id]["text"] == formatter.ERROR_TEXT

    @pytest.mark.asyncio
    async def test_noop_button(self, handlers, channel, parser):
        mid = await _submit(handlers, channel, parser, "lai", [ParsedItem("lait", 1, "Épicerie")])
        await _press(handlers, channel, mid, channel.button(mid, "✏️"))
        rows = channel.messages[mid]["keyboard"]
        quantity_button = next(b for row in rows for b in row if b.text == "1")
        assert await _press(handlers, channel, mid, quantity_button.callback_data) == ""


class TestSlashCommands:
    @pytest.mark.asyncio
    async def test_help(self, handlers, channel):
        await handlers.handle_message(_message("/start"))
        assert channel.messages[channel.last_id]["text"] == formatter.HELP_TEXT

    @pytest.mark.asyncio
    async def test_list_groups_and_found(self, handlers, channel, stores):
        items = stores[0]
        pain, lait = items.add_items(
            [ParsedItem("pain", 1, "Boulangerie"), ParsedItem("lait", 2, "Produits laitiers")],
            status=PENDING,
        )
        items.update_status(pain.id, FOUND)
        items.add_items([ParsedItem("thé", 1, "Boissons")], status=CONFIRMING)

        await handlers.handle_message(_message("/list"))

        text = channel.messages[channel.last_id]["text"]
        assert "<b>Produits laitiers</b>" in text
        assert "<b>Found</b>" in text
        assert "thé" not in text

    @pytest.mark.asyncio
    async def test_clear(self, handlers, channel, stores):
        stores[0].add_items([ParsedItem("pain", 1, "Boulangerie")], status=PENDING)
        await handlers.handle_message(_message("/clear"))
        assert "Cleared 1 item(s)" in channel.messages[channel.last_id]["text"]
        assert stores[0].list_all() == []

    @pytest.mark.asyncio
    async def test_stats(self, handlers, channel, cache):
        cache.record_variant("pommes", "Fruits et légumes", "pomme")
        await handlers.handle_message(_message("/stats@GroceryBot"))
        text = channel.messages[channel.last_id]["text"]
        assert "Products: 1" in text
        assert "Variants: 1" in text

    @pytest.mark.asyncio
    async def test_unknown_command(self, handlers, channel):
        await handlers.handle_message(_message("/dance"))
        assert "Unknown command /dance" in channel.messages[channel.last_id]["text"]
