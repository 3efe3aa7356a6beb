"""Grocery item CRUD operations."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from ..errors import StoreError
from ..models import GroceryItem, ParsedItem
from .schema import ensure_schema, store_errors


class ItemStore:
    """Manages the grocery_items table.

    Every read goes to the database; nothing is cached in memory. Each
    mutating call is a single statement followed by a commit.
    """

    def __init__(
        self, db_path: str | Path = "~/.config/grocery-bot/grocery_bot.db"
    ) -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def add_items(
        self, items: list[ParsedItem], *, status: str, batch_id: str | None = None
    ) -> list[GroceryItem]:
        """Insert parsed items with the given status and batch id.

        Returns:
            The stored items, in input order.
        """
        conn = self._get_conn()
        ids: list[int] = []
        with store_errors("adding items"):
            for item in items:
                cur = conn.execute(
                    """INSERT INTO grocery_items
                       (article, quantity, category, status, batch_id)
                       VALUES (?, ?, ?, ?, ?)""",
                    (item.name, max(1, item.quantity), item.category, status, batch_id),
                )
                ids.append(cur.lastrowid)
            conn.commit()
        return [self._require(i) for i in ids]

    def get(self, item_id: int) -> GroceryItem | None:
        conn = self._get_conn()
        with store_errors("reading item"):
            row = conn.execute(
                "SELECT * FROM grocery_items WHERE id = ?", (item_id,)
            ).fetchone()
        return GroceryItem.from_row(row) if row else None

    def _require(self, item_id: int) -> GroceryItem:
        item = self.get(item_id)
        if item is None:
            raise StoreError(f"item {item_id} missing right after insert")
        return item

    def find_by_name(
        self, name: str, *, exclude_id: int | None = None
    ) -> GroceryItem | None:
        """Return the first committed item (any status but confirming) with this name.

        Active items win over found ones.
        """
        conn = self._get_conn()
        with store_errors("looking up item by name"):
            row = conn.execute(
                """SELECT * FROM grocery_items
                   WHERE LOWER(article) = LOWER(?)
                     AND status != 'confirming'
                     AND id IS NOT ?
                   ORDER BY CASE WHEN status = 'found' THEN 1 ELSE 0 END, id
                   LIMIT 1""",
                (name, exclude_id),
            ).fetchone()
        return GroceryItem.from_row(row) if row else None

    def list_all(self) -> list[GroceryItem]:
        """Return every item in creation order."""
        conn = self._get_conn()
        with store_errors("listing items"):
            rows = conn.execute("SELECT * FROM grocery_items ORDER BY id").fetchall()
        return [GroceryItem.from_row(r) for r in rows]

    def list_by_batch(
        self, batch_id: str, *, status: str | None = None
    ) -> list[GroceryItem]:
        """Return the items of a batch, optionally restricted to one status."""
        conn = self._get_conn()
        with store_errors("listing batch items"):
            if status is None:
                rows = conn.execute(
                    "SELECT * FROM grocery_items WHERE batch_id = ? ORDER BY id",
                    (batch_id,),
                ).fetchall()
            else:
                rows = conn.execute(
                    """SELECT * FROM grocery_items
                       WHERE batch_id = ? AND status = ? ORDER BY id""",
                    (batch_id, status),
                ).fetchall()
        return [GroceryItem.from_row(r) for r in rows]

    def update_item(
        self,
        item_id: int,
        *,
        category: str,
        quantity: int,
        note: str | None,
        status: str | None = None,
        batch_id: str | None = None,
    ) -> bool:
        """Overwrite the editable fields of one item.

        ``status`` and ``batch_id`` are only written when given.

        Returns:
            True if a row was updated.
        """
        conn = self._get_conn()
        with store_errors("updating item"):
            cur = conn.execute(
                """UPDATE grocery_items
                   SET category = ?,
                       quantity = ?,
                       note = ?,
                       status = COALESCE(?, status),
                       batch_id = COALESCE(?, batch_id),
                       updated_at = CURRENT_TIMESTAMP
                   WHERE id = ?""",
                (category, max(1, quantity), note, status, batch_id, item_id),
            )
            conn.commit()
        return cur.rowcount > 0

    def update_status(self, item_id: int, status: str) -> bool:
        conn = self._get_conn()
        with store_errors("updating item status"):
            cur = conn.execute(
                """UPDATE grocery_items
                   SET status = ?, updated_at = CURRENT_TIMESTAMP
                   WHERE id = ?""",
                (status, item_id),
            )
            conn.commit()
        return cur.rowcount > 0

    def reset_status(self, from_status: str, to_status: str) -> int:
        """Move every item in ``from_status`` to ``to_status``.

        Returns:
            Number of rows updated.
        """
        conn = self._get_conn()
        with store_errors("resetting item status"):
            cur = conn.execute(
                """UPDATE grocery_items
                   SET status = ?, updated_at = CURRENT_TIMESTAMP
                   WHERE status = ?""",
                (to_status, from_status),
            )
            conn.commit()
        return cur.rowcount

    def delete_item(self, item_id: int) -> bool:
        conn = self._get_conn()
        with store_errors("deleting item"):
            cur = conn.execute("DELETE FROM grocery_items WHERE id = ?", (item_id,))
            conn.commit()
        return cur.rowcount > 0

    def delete_by_status(self, status: str) -> int:
        conn = self._get_conn()
        with store_errors("deleting items by status"):
            cur = conn.execute(
                "DELETE FROM grocery_items WHERE status = ?", (status,)
            )
            conn.commit()
        return cur.rowcount

    def delete_batch(self, batch_id: str, *, status: str | None = None) -> int:
        """Delete the items of a batch, optionally only those in one status."""
        conn = self._get_conn()
        with store_errors("deleting batch"):
            if status is None:
                cur = conn.execute(
                    "DELETE FROM grocery_items WHERE batch_id = ?", (batch_id,)
                )
            else:
                cur = conn.execute(
                    "DELETE FROM grocery_items WHERE batch_id = ? AND status = ?",
                    (batch_id, status),
                )
            conn.commit()
        return cur.rowcount

    def delete_committed(self) -> int:
        """Delete every item that is no longer awaiting confirmation."""
        conn = self._get_conn()
        with store_errors("clearing list"):
            cur = conn.execute(
                "DELETE FROM grocery_items WHERE status != 'confirming'"
            )
            conn.commit()
        return cur.rowcount
