"""Batch lifecycle: tentative items from one submission until confirmed or cancelled."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field

from .db import ItemStore
from .errors import NotFoundError, ValidationFailedError
from .models import CONFIRMING, FOUND, NOT_FOUND, PENDING, GroceryItem, ParsedItem
from .pipeline import ParsingPipeline

logger = logging.getLogger(__name__)

_BATCH_ID_BYTES = 4


def new_batch_id() -> str:
    """Return a fresh 8-character hex batch identifier."""
    return secrets.token_hex(_BATCH_ID_BYTES)


@dataclass
class Batch:
    """Items created together from one text submission."""

    batch_id: str
    items: list[GroceryItem] = field(default_factory=list)
    # item id -> line the item was typed as
    origins: dict[int, str] = field(default_factory=dict)
    dropped: int = 0


class BatchManager:
    """Owns the confirming -> pending lifecycle of batch items.

    Parsed items are stored as ``confirming`` and only join the shopping
    list once confirmed. Multi-item operations are sequences of independent
    single-item writes; a batch interrupted half-way can still be confirmed
    or cancelled item by item.
    """

    def __init__(self, items: ItemStore, pipeline: ParsingPipeline) -> None:
        self._items = items
        self._pipeline = pipeline

    async def create_from_text(self, text: str) -> Batch:
        """Parse free text and store the result as a new batch.

        Raises:
            ParsingFailedError: If the AI parser fails; nothing is stored.
        """
        parsed = await self._pipeline.parse_for_batch(text)
        return self.create_batch(parsed)

    def create_batch(self, parsed: list[ParsedItem]) -> Batch:
        """Store parsed items as ``confirming`` under a fresh batch id.

        Entries without a name or category are dropped.
        """
        batch_id = new_batch_id()
        valid: list[ParsedItem] = []
        dropped = 0
        for entry in parsed:
            try:
                entry.validate()
            except ValidationFailedError as e:
                logger.warning("Dropping parsed entry: %s", e)
                dropped += 1
                continue
            valid.append(entry)

        batch = Batch(batch_id=batch_id, dropped=dropped)
        if not valid:
            return batch

        batch.items = self._items.add_items(valid, status=CONFIRMING, batch_id=batch_id)
        batch.origins = {
            item.id: entry.original_line or entry.name
            for item, entry in zip(batch.items, valid)
        }
        logger.info(
            "Created batch %s with %d item(s): %s",
            batch_id,
            len(batch.items),
            ", ".join(i.name for i in batch.items),
        )
        return batch

    def _batch_item(self, batch_id: str, item_id: int) -> GroceryItem:
        item = self._items.get(item_id)
        if item is None or item.batch_id != batch_id:
            raise NotFoundError(
                f"item {item_id} not found in batch {batch_id}",
                item_id=item_id,
                batch_id=batch_id,
            )
        return item

    def confirm_item(
        self, batch_id: str, item_id: int, original_line: str | None = None
    ) -> GroceryItem:
        """Move one batch item onto the list, merging with a same-name item.

        Confirming an already committed item returns it unchanged. When the
        item merges into an existing one, the confirming row is deleted and
        the existing row (now tagged with this batch) is returned.

        Raises:
            NotFoundError: If the item is gone or belongs to another batch.
        """
        item = self._batch_item(batch_id, item_id)
        if item.status != CONFIRMING:
            logger.debug("Item %d already confirmed", item_id)
            return item

        existing = self._items.find_by_name(item.name, exclude_id=item.id)
        if existing is not None:
            status = PENDING if existing.status in (FOUND, NOT_FOUND) else existing.status
            self._items.update_item(
                existing.id,
                category=item.category,
                quantity=existing.quantity + item.quantity,
                note=existing.note,
                status=status,
                batch_id=batch_id,
            )
            self._items.delete_item(item.id)
            committed = self._items.get(existing.id)
            if committed is None:
                raise NotFoundError(
                    f"item {existing.id} disappeared during merge",
                    item_id=existing.id,
                    batch_id=batch_id,
                )
            logger.info(
                "Merged %s into item %d (x%d)",
                item.name,
                committed.id,
                committed.quantity,
            )
        else:
            self._items.update_status(item.id, PENDING)
            committed = self._batch_item(batch_id, item_id)
            logger.info("Confirmed %s (x%d)", committed.name, committed.quantity)

        if original_line:
            self._pipeline.learn(item.name, item.category, original_line)
        return committed

    def confirm_batch(
        self, batch_id: str, origins: dict[int, str] | None = None
    ) -> list[GroceryItem]:
        """Confirm every item of the batch still awaiting confirmation."""
        origins = origins or {}
        committed = []
        for item in self._items.list_by_batch(batch_id, status=CONFIRMING):
            committed.append(
                self.confirm_item(batch_id, item.id, origins.get(item.id))
            )
        return committed

    def cancel_item(self, batch_id: str, item_id: int) -> GroceryItem:
        """Drop one unconfirmed item from its batch.

        Raises:
            NotFoundError: If the item is gone, belongs to another batch, or
                was already confirmed.
        """
        item = self._batch_item(batch_id, item_id)
        if item.status != CONFIRMING:
            raise NotFoundError(
                f"item {item_id} is already on the list",
                item_id=item_id,
                batch_id=batch_id,
            )
        self._items.delete_item(item.id)
        logger.info("Cancelled %s from batch %s", item.name, batch_id)
        return item

    def cancel_batch(self, batch_id: str) -> int:
        """Delete every still-unconfirmed item of the batch.

        Items already confirmed from this batch are left alone.

        Returns:
            Number of items deleted.
        """
        count = self._items.delete_batch(batch_id, status=CONFIRMING)
        logger.info("Cancelled batch %s (%d item(s))", batch_id, count)
        return count

    def batch_items(self, batch_id: str) -> list[GroceryItem]:
        return self._items.list_by_batch(batch_id)

    def get_item(self, item_id: int) -> GroceryItem:
        item = self._items.get(item_id)
        if item is None:
            raise NotFoundError(f"item {item_id} not found", item_id=item_id)
        return item

    def edit_item(
        self, item_id: int, category: str, quantity: int, note: str | None
    ) -> GroceryItem:
        """Overwrite category, quantity and note of one item.

        Quantity is clamped to at least 1. No merging happens here.

        Raises:
            NotFoundError: If the item does not exist.
        """
        if not self._items.update_item(
            item_id, category=category, quantity=max(1, quantity), note=note or None
        ):
            raise NotFoundError(f"item {item_id} not found", item_id=item_id)
        item = self.get_item(item_id)
        logger.info(
            "Edited item %d: %s (x%d) [%s]", item.id, item.name, item.quantity, item.category
        )
        return item
