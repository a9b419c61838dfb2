"""SQLite persistence for raw chat messages and token usage.

Each call opens its own short-lived connection so the store can be shared
across concurrently running conversations. Failures are logged and degrade
to empty results; losing a message is preferable to crashing the chat flow.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from telence.errors import StorageError

_LOG = logging.getLogger(__name__)

# Sender id reserved for messages written by the bot itself.
ASSISTANT_SENDER_ID = 0


def format_timestamp(dt: datetime) -> str:
    """Render ``dt`` in the single UTC ISO-8601 form stored in the database.

    One fixed format keeps string comparison in SQL chronological.
    """
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def utc_now() -> str:
    return format_timestamp(datetime.now(timezone.utc))


@dataclass(frozen=True)
class MessageRecord:
    """One stored chat message."""

    conversation_id: int
    sender_id: int
    sender_name: str
    text: str
    timestamp: str  # ISO-8601, UTC

    @property
    def from_assistant(self) -> bool:
        return self.sender_id == ASSISTANT_SENDER_ID


class MessageStore:
    """Database interface for per-conversation message history."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)

    # ==================== Database Connection ====================

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection that commits on success.

        Any sqlite failure is re-raised as :class:`StorageError`.
        """
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as exc:
            raise StorageError(f"cannot open {self.db_path}: {exc}") from exc
        try:
            conn.row_factory = sqlite3.Row
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create required tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS messages (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        chat_id INTEGER NOT NULL,
                        user_id INTEGER NOT NULL,
                        username TEXT,
                        message TEXT,
                        timestamp TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS usage (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        chat_id INTEGER NOT NULL,
                        tokens_used INTEGER,
                        model TEXT,
                        timestamp TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_messages_chat_id_timestamp
                    ON messages (chat_id, timestamp)
                    """
                )
        except StorageError:
            _LOG.exception("Database setup failed for %s", self.db_path)

    # ==================== Messages ====================

    def insert_message(
        self,
        conversation_id: int,
        sender_id: int,
        sender_name: str,
        text: str,
        timestamp: str,
    ) -> None:
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO messages (chat_id, user_id, username, message, timestamp)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (conversation_id, sender_id, sender_name, text, timestamp),
                )
        except StorageError:
            _LOG.exception("Failed to store message for chat %s", conversation_id)

    def query_recent(self, conversation_id: int, limit: int) -> list[MessageRecord]:
        """Return the ``limit`` most recent messages, oldest first."""
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    """
                    SELECT * FROM messages
                    WHERE chat_id = ?
                    ORDER BY timestamp DESC, id DESC
                    LIMIT ?
                    """,
                    (conversation_id, limit),
                )
                rows = cursor.fetchall()
        except StorageError:
            _LOG.exception("Failed to query messages for chat %s", conversation_id)
            return []
        # Reverse to get chronological order (oldest first)
        return [self._row_to_record(row) for row in reversed(rows)]

    def query_recent_since(self, conversation_id: int, since_timestamp: str) -> list[MessageRecord]:
        """Return every message at or after ``since_timestamp``, oldest first."""
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    """
                    SELECT * FROM messages
                    WHERE chat_id = ? AND timestamp >= ?
                    ORDER BY timestamp ASC, id ASC
                    """,
                    (conversation_id, since_timestamp),
                )
                rows = cursor.fetchall()
        except StorageError:
            _LOG.exception("Failed to query messages since %s for chat %s", since_timestamp, conversation_id)
            return []
        return [self._row_to_record(row) for row in rows]

    def delete_messages(self, conversation_id: int) -> int:
        """Delete the whole history of a conversation; returns rows removed."""
        try:
            with self._get_connection() as conn:
                cursor = conn.execute("DELETE FROM messages WHERE chat_id = ?", (conversation_id,))
                return cursor.rowcount
        except StorageError:
            _LOG.exception("Failed to delete messages for chat %s", conversation_id)
            return 0

    def _row_to_record(self, row: sqlite3.Row) -> MessageRecord:
        return MessageRecord(
            conversation_id=row["chat_id"],
            sender_id=row["user_id"],
            sender_name=row["username"] or "",
            text=row["message"] or "",
            timestamp=row["timestamp"],
        )

    # ==================== Usage ====================

    def record_usage(self, conversation_id: int, tokens_used: int | None, model: str, timestamp: str) -> None:
        try:
            with self._get_connection() as conn:
                conn.execute(
                    "INSERT INTO usage (chat_id, tokens_used, model, timestamp) VALUES (?, ?, ?, ?)",
                    (conversation_id, tokens_used, model, timestamp),
                )
        except StorageError:
            _LOG.exception("Failed to record usage for chat %s", conversation_id)

    def total_tokens(self, conversation_id: int) -> int:
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "SELECT COALESCE(SUM(tokens_used), 0) FROM usage WHERE chat_id = ?",
                    (conversation_id,),
                )
                return int(cursor.fetchone()[0])
        except StorageError:
            _LOG.exception("Failed to read usage for chat %s", conversation_id)
            return 0
