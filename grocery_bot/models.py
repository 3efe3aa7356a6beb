"""Data models for grocery items and parser output."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import ValidationFailedError

# Item statuses
CONFIRMING = "confirming"
PENDING = "pending"
SELECTED = "selected"
FOUND = "found"
NOT_FOUND = "not_found"

# Statuses that count as "on the list" for merging and shopping
ACTIVE_STATUSES = (PENDING, SELECTED, NOT_FOUND)

# Upper bound for a quantity read from user text or a model answer
MAX_QUANTITY = 999


@dataclass
class GroceryItem:
    """A row of the grocery_items table."""

    id: int
    name: str
    category: str
    quantity: int = 1
    status: str = PENDING
    batch_id: str | None = None
    note: str | None = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @classmethod
    def from_row(cls, row) -> GroceryItem:
        return cls(
            id=row["id"],
            name=row["article"],
            category=row["category"],
            quantity=row["quantity"],
            status=row["status"],
            batch_id=row["batch_id"],
            note=row["note"],
            created_at=row["created_at"] or "",
            updated_at=row["updated_at"] or "",
        )


@dataclass
class ParsedItem:
    """One line of user input resolved to a product."""

    name: str
    quantity: int
    category: str
    original_line: str = ""

    def validate(self) -> None:
        """Raise ValidationFailedError unless name and category are present."""
        if not self.name or not self.name.strip():
            raise ValidationFailedError(
                f"parsed entry has no name (line {self.original_line!r})"
            )
        if not self.category or not self.category.strip():
            raise ValidationFailedError(
                f"parsed entry {self.name!r} has no category"
            )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "quantity": self.quantity,
            "category": self.category,
            "original_line": self.original_line,
        }
