"""Category-based shopping navigation and per-item status cycling."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .db import ItemStore
from .errors import NotFoundError
from .models import (
    CONFIRMING,
    FOUND,
    NOT_FOUND,
    PENDING,
    SELECTED,
    GroceryItem,
)

logger = logging.getLogger(__name__)

# Tap cycle; statuses missing here do not move on tap
_NEXT_STATUS: dict[str, str] = {
    PENDING: SELECTED,
    SELECTED: FOUND,
    NOT_FOUND: PENDING,
}


def next_status(status: str) -> str:
    """Status an item moves to when tapped."""
    return _NEXT_STATUS.get(status, status)


@dataclass(frozen=True)
class CategoryList:
    """The overview listing every category with active items."""


@dataclass(frozen=True)
class CategoryDetail:
    """One category drilled into."""

    category: str


View = CategoryList | CategoryDetail


@dataclass
class ShoppingList:
    # category -> active items, categories sorted case-insensitively
    grouped: dict[str, list[GroceryItem]] = field(default_factory=dict)
    active_items: list[GroceryItem] = field(default_factory=list)
    found_items: list[GroceryItem] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.active_items and not self.found_items

    def items_in(self, category: str) -> list[GroceryItem]:
        return self.grouped.get(category, [])

    def category_counts(self) -> dict[str, int]:
        return {cat: len(items) for cat, items in self.grouped.items()}


class ShoppingNavigator:
    """Reads and updates item statuses during a shopping session.

    Holds no navigation state: callers pass the view they are rendering.
    """

    def __init__(self, items: ItemStore) -> None:
        self._items = items

    def list_by_category_grouped(self) -> ShoppingList:
        """Group committed items by category.

        Found items are kept apart in ``found_items``. Within a category
        items stay in creation order so the list does not reshuffle while
        statuses change.
        """
        result = ShoppingList()
        for item in self._items.list_all():
            if item.status == FOUND:
                result.found_items.append(item)
            elif item.is_active:
                result.active_items.append(item)

        for category in sorted(
            {i.category for i in result.active_items}, key=str.casefold
        ):
            result.grouped[category] = [
                i for i in result.active_items if i.category == category
            ]
        return result

    def _committed_item(self, item_id: int) -> GroceryItem:
        item = self._items.get(item_id)
        if item is None or item.status == CONFIRMING:
            raise NotFoundError(f"item {item_id} is not on the list", item_id=item_id)
        return item

    def advance_status(self, item_id: int) -> str:
        """Apply the tap cycle pending -> selected -> found, not_found -> pending.

        Found items stay found.

        Returns:
            The resulting status.

        Raises:
            NotFoundError: If the item is not on the list.
        """
        item = self._committed_item(item_id)
        new = next_status(item.status)
        if new != item.status:
            if not self._items.update_status(item_id, new):
                raise NotFoundError(f"item {item_id} not found", item_id=item_id)
            logger.info("Item %d (%s): %s -> %s", item_id, item.name, item.status, new)
        return new

    def mark_not_found(self, item_id: int) -> str:
        """Flag an item the shop does not have."""
        item = self._committed_item(item_id)
        if item.status not in (PENDING, SELECTED):
            return item.status
        if not self._items.update_status(item_id, NOT_FOUND):
            raise NotFoundError(f"item {item_id} not found", item_id=item_id)
        logger.info("Item %d (%s): %s -> %s", item_id, item.name, item.status, NOT_FOUND)
        return NOT_FOUND

    def clear_found(self) -> int:
        """Delete all found items."""
        count = self._items.delete_by_status(FOUND)
        logger.info("Cleared %d found item(s)", count)
        return count

    def clear_selection(self) -> int:
        """Put every selected item back to pending."""
        count = self._items.reset_status(SELECTED, PENDING)
        logger.info("Reset %d selected item(s) to pending", count)
        return count

    def clear_all(self) -> int:
        """Delete the whole list; batches still awaiting confirmation survive."""
        count = self._items.delete_committed()
        logger.info("Cleared entire list (%d item(s))", count)
        return count

    def resolve_view(self, view: View, shopping: ShoppingList) -> View:
        """Fall back to the category list when a category has emptied out."""
        if isinstance(view, CategoryDetail) and not shopping.items_in(view.category):
            return CategoryList()
        return view
