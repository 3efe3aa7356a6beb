"""SQLite storage for grocery items and callback sessions."""

from .items import ItemStore
from .schema import ensure_schema
from .sessions import SessionStore

__all__ = [
    "ItemStore",
    "SessionStore",
    "ensure_schema",
]
