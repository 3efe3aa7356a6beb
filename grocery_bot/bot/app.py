"""Bot runtime: long polling, authorization and graceful shutdown."""

from __future__ import annotations

import asyncio
import logging
import signal

from ..ai import create_parser
from ..batch import BatchManager
from ..cache import ProductCache
from ..config import BotConfig
from ..db import ItemStore, SessionStore
from ..pipeline import ParsingPipeline
from ..scheduler import SessionCleanupScheduler
from ..shopping import ShoppingNavigator
from . import formatter
from .channel import CallbackQuery, IncomingMessage, User
from .handlers import BotHandlers
from .telegram import TelegramChannel, TelegramError, parse_update

logger = logging.getLogger(__name__)

# Pause after a failed getUpdates call before polling again
_RETRY_DELAY = 5.0


def is_authorized(user: User | None, allowed: list[str]) -> bool:
    """Check a user against the allow-list of usernames or first names.

    An empty allow-list lets everyone in.
    """
    if not allowed:
        return True
    if user is None:
        return False
    names = {n.lstrip("@").casefold() for n in allowed}
    return any(
        candidate and candidate.casefold() in names
        for candidate in (user.username, user.first_name)
    )


def _who(user: User | None) -> str:
    return user.display_name if user else "anonymous"


class GroceryBot:
    """Wires the stores, the parsing pipeline and the Telegram channel together."""

    def __init__(
        self,
        config: BotConfig,
        *,
        channel: TelegramChannel | None = None,
    ) -> None:
        self._config = config
        self._items = ItemStore(config.database.path)
        self._sessions = SessionStore(
            config.database.path, expire_hours=config.sessions.expire_hours
        )
        self._cache = ProductCache(config.cache.path)
        pipeline = ParsingPipeline(self._cache, create_parser(config))
        self._channel = channel or TelegramChannel(config.telegram.token)
        self.handlers = BotHandlers(
            channel=self._channel,
            batches=BatchManager(self._items, pipeline),
            navigator=ShoppingNavigator(self._items),
            sessions=self._sessions,
            cache=self._cache,
        )
        self._tasks: set[asyncio.Task] = set()
        self._stop = asyncio.Event()

    def stop(self) -> None:
        """Ask the polling loop to finish."""
        self._stop.set()

    async def dispatch(self, update: dict) -> None:
        """Handle one raw update; never raises."""
        event = parse_update(update)
        if event is None:
            return
        allowed = self._config.telegram.authorized_users
        try:
            match event:
                case CallbackQuery():
                    if not is_authorized(event.user, allowed):
                        logger.warning("Unauthorized callback from %s", _who(event.user))
                        await self._channel.answer_callback(
                            event.id, formatter.UNAUTHORIZED_TEXT, show_alert=True
                        )
                        return
                    await self.handlers.handle_callback(event)
                case IncomingMessage():
                    if not is_authorized(event.user, allowed):
                        logger.warning("Unauthorized message from %s", _who(event.user))
                        await self._channel.send_message(
                            event.chat_id, formatter.UNAUTHORIZED_TEXT
                        )
                        return
                    await self.handlers.handle_message(event)
        except Exception:
            logger.exception("Failed to handle update %s", update.get("update_id"))

    def _spawn(self, update: dict) -> None:
        task = asyncio.create_task(self.dispatch(update))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _pause(self) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), _RETRY_DELAY)
        except asyncio.TimeoutError:
            pass

    async def _poll(self) -> None:
        offset: int | None = None
        timeout = self._config.telegram.poll_timeout
        while not self._stop.is_set():
            try:
                updates = await self._channel.get_updates(offset, timeout)
            except TelegramError as e:
                logger.error("Polling failed: %s", e)
                await self._pause()
                continue
            for update in updates:
                offset = update["update_id"] + 1
                self._spawn(update)

    async def run(self) -> None:
        """Poll until SIGINT/SIGTERM, then shut everything down."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except NotImplementedError:
                # Windows event loops have no signal handlers
                pass

        scheduler = SessionCleanupScheduler(self._config, self._sessions)
        scheduler.start()
        logger.info("Grocery bot started (AI backend: %s)", self._config.ai.backend)

        poller = asyncio.create_task(self._poll())
        try:
            await self._stop.wait()
        finally:
            logger.info("Shutting down")
            poller.cancel()
            try:
                await poller
            except asyncio.CancelledError:
                pass
            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)
            scheduler.stop()
            await self.close()

    async def close(self) -> None:
        await self._channel.close()
        self._items.close()
        self._sessions.close()
