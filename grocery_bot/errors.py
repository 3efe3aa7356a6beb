"""Error types shared by the stores, the parsing pipeline and the bot."""

from __future__ import annotations


class GroceryBotError(Exception):
    """Base class for all grocery bot errors."""


class NotFoundError(GroceryBotError):
    """A referenced item, batch or session token does not exist or does not match.

    Stale or replayed buttons end up here; the bot answers them with a
    non-fatal "already handled" notice.
    """

    def __init__(
        self,
        message: str,
        *,
        item_id: int | None = None,
        batch_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.item_id = item_id
        self.batch_id = batch_id


class ParsingFailedError(GroceryBotError):
    """The AI parser errored or returned unusable output.

    All-or-nothing: nothing from the failed submission is stored.
    """


class ValidationFailedError(GroceryBotError):
    """A parsed entry is missing its name or category."""


class StoreError(GroceryBotError):
    """A durable storage operation failed."""
