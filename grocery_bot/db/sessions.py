"""Short-lived callback tokens backed by the sessions table."""

from __future__ import annotations

import json
import logging
import secrets
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

from ..errors import StoreError
from .schema import ensure_schema, store_errors

logger = logging.getLogger(__name__)

_TOKEN_BYTES = 4
_MAX_TOKEN_ATTEMPTS = 5
# Same layout as SQLite's CURRENT_TIMESTAMP so expiry can be compared in SQL
_TS_FORMAT = "%Y-%m-%d %H:%M:%S"


def new_token() -> str:
    """Return a fresh 8-character hex token."""
    return secrets.token_hex(_TOKEN_BYTES)


class SessionStore:
    """Maps opaque button tokens to JSON payloads scoped to one message.

    Expired tokens read as missing even before cleanup removes them.
    """

    def __init__(
        self,
        db_path: str | Path = "~/.config/grocery-bot/grocery_bot.db",
        *,
        expire_hours: float = 24,
    ) -> None:
        self._db_path = db_path
        self._ttl = timedelta(hours=expire_hours)
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def create(
        self, message_id: int, data: dict, *, ttl: timedelta | None = None
    ) -> str:
        """Store ``data`` under a new token bound to ``message_id``.

        Returns:
            The token.
        """
        conn = self._get_conn()
        expires_at = datetime.now(timezone.utc) + (self._ttl if ttl is None else ttl)
        payload = json.dumps(data, ensure_ascii=False)
        for _ in range(_MAX_TOKEN_ATTEMPTS):
            token = new_token()
            try:
                conn.execute(
                    """INSERT INTO sessions (id, message_id, data, expires_at)
                       VALUES (?, ?, ?, ?)""",
                    (token, message_id, payload, expires_at.strftime(_TS_FORMAT)),
                )
            except sqlite3.IntegrityError:
                logger.debug("Session token collision on %s, retrying", token)
                continue
            except sqlite3.Error as e:
                raise StoreError(f"creating session failed: {e}") from e
            with store_errors("creating session"):
                conn.commit()
            return token
        raise StoreError("could not allocate a unique session token")

    def get(self, token: str) -> dict | None:
        """Return the payload for ``token``, or None if missing or expired."""
        conn = self._get_conn()
        with store_errors("reading session"):
            row = conn.execute(
                """SELECT data FROM sessions
                   WHERE id = ? AND expires_at > CURRENT_TIMESTAMP""",
                (token,),
            ).fetchone()
        if row is None:
            return None
        try:
            data = json.loads(row["data"])
        except json.JSONDecodeError:
            logger.warning("Session %s holds malformed JSON, ignoring it", token)
            return None
        return data if isinstance(data, dict) else None

    def update(self, token: str, data: dict) -> bool:
        """Replace the payload of a live token.

        Returns:
            False if the token is missing or expired.
        """
        conn = self._get_conn()
        with store_errors("updating session"):
            cur = conn.execute(
                """UPDATE sessions SET data = ?
                   WHERE id = ? AND expires_at > CURRENT_TIMESTAMP""",
                (json.dumps(data, ensure_ascii=False), token),
            )
            conn.commit()
        return cur.rowcount > 0

    def delete(self, token: str) -> bool:
        conn = self._get_conn()
        with store_errors("deleting session"):
            cur = conn.execute("DELETE FROM sessions WHERE id = ?", (token,))
            conn.commit()
        return cur.rowcount > 0

    def delete_by_message(self, message_id: int, chat_id: int | None = None) -> int:
        """Drop every token issued for one message.

        Message ids are only unique within a chat, so passing ``chat_id``
        restricts the delete to payloads recorded for that chat.
        """
        conn = self._get_conn()
        with store_errors("deleting message sessions"):
            if chat_id is None:
                cur = conn.execute(
                    "DELETE FROM sessions WHERE message_id = ?", (message_id,)
                )
            else:
                cur = conn.execute(
                    """DELETE FROM sessions
                       WHERE message_id = ?
                         AND CASE WHEN json_valid(data)
                                  THEN json_extract(data, '$.chat_id') END = ?""",
                    (message_id, chat_id),
                )
            conn.commit()
        return cur.rowcount

    def list_by_message(
        self, message_id: int, chat_id: int | None = None
    ) -> list[dict]:
        """Live payloads issued for one message, oldest first."""
        conn = self._get_conn()
        with store_errors("reading message sessions"):
            rows = conn.execute(
                """SELECT id, data FROM sessions
                   WHERE message_id = ? AND expires_at > CURRENT_TIMESTAMP
                   ORDER BY created_at, rowid""",
                (message_id,),
            ).fetchall()
        payloads = []
        for row in rows:
            try:
                data = json.loads(row["data"])
            except json.JSONDecodeError:
                logger.warning("Session %s holds malformed JSON, ignoring it", row["id"])
                continue
            if not isinstance(data, dict):
                continue
            if chat_id is None or data.get("chat_id") == chat_id:
                payloads.append(data)
        return payloads

    def cleanup_expired(self) -> int:
        """Delete expired tokens.

        Returns:
            Number of tokens removed.
        """
        conn = self._get_conn()
        with store_errors("cleaning up sessions"):
            cur = conn.execute(
                "DELETE FROM sessions WHERE expires_at <= CURRENT_TIMESTAMP"
            )
            conn.commit()
        if cur.rowcount > 0:
            logger.info("Cleaned up %d expired sessions", cur.rowcount)
        return cur.rowcount
