"""Database schema definitions and migration helpers."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ..errors import StoreError

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 2

_DDL = """
CREATE TABLE IF NOT EXISTS grocery_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    article TEXT NOT NULL,
    quantity INTEGER NOT NULL DEFAULT 1,
    category TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    batch_id TEXT,
    note TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    message_id INTEGER NOT NULL,
    data TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    expires_at DATETIME NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_expires ON sessions(expires_at);

CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);
"""

# Indexes on columns that older databases may lack until _add_missing_columns ran
_INDEX_DDL = """
CREATE INDEX IF NOT EXISTS idx_grocery_status ON grocery_items(status);
CREATE INDEX IF NOT EXISTS idx_grocery_batch ON grocery_items(batch_id);
"""

# Columns added after the first deployments (name -> column definition)
_LATE_COLUMNS: dict[str, str] = {
    "batch_id": "TEXT",
    "note": "TEXT",
}


@contextmanager
def store_errors(action: str) -> Iterator[None]:
    """Re-raise sqlite3 errors (and integers too large to bind) as StoreError."""
    try:
        yield
    except (sqlite3.Error, OverflowError) as e:
        raise StoreError(f"{action} failed: {e}") from e


def _add_missing_columns(conn: sqlite3.Connection) -> None:
    info = conn.execute("PRAGMA table_info(grocery_items)").fetchall()
    existing = {row["name"] for row in info}
    for name, definition in _LATE_COLUMNS.items():
        if name not in existing:
            logger.info("Adding missing column grocery_items.%s", name)
            conn.execute(f"ALTER TABLE grocery_items ADD COLUMN {name} {definition}")


def ensure_schema(db_path: str | Path) -> sqlite3.Connection:
    """Open (or create) the database and ensure the schema is up to date.

    Databases written by earlier deployments (no schema_version table, no
    batch_id/note columns) are upgraded in place.

    Args:
        db_path: Path to the SQLite database file.

    Returns:
        An open sqlite3.Connection with the schema applied.

    Raises:
        StoreError: If the database cannot be opened or migrated.
    """
    db_path = Path(db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    with store_errors("opening database"):
        conn = sqlite3.connect(str(db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")

        try:
            row = conn.execute("SELECT version FROM schema_version").fetchone()
            current_version = row["version"] if row else 0
        except sqlite3.OperationalError:
            current_version = 0

        if current_version < _SCHEMA_VERSION:
            conn.executescript(_DDL)
            _add_missing_columns(conn)
            conn.executescript(_INDEX_DDL)
            conn.execute("DELETE FROM schema_version")
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (_SCHEMA_VERSION,),
            )
            conn.commit()
            logger.info(
                "Database schema upgraded from v%d to v%d",
                current_version,
                _SCHEMA_VERSION,
            )

    return conn
