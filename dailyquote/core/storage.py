"""Key-value persistence for quotes, the daily selection and preferences."""

from __future__ import annotations

import logging
import os
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass

from dailyquote.core.settings import Settings

logger = logging.getLogger(__name__)

# Persisted keys
QUOTE_DATE_KEY = "quoteOfTheDayDate"
QUOTE_INDEX_KEY = "quoteOfTheDayIndex"
NOTIFICATION_TIME_KEY = "notificationTime"
IMPORTED_QUOTES_KEY = "importedQuotes"


SCHEMA_SQL = """
PRAGMA journal_mode=WAL;

-- App Settings (Key-Value Store)
CREATE TABLE IF NOT EXISTS app_settings (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL,
  updated_at TEXT DEFAULT (datetime('now'))
);
"""


class StorageError(Exception):
    """The key-value store could not complete a read or write."""


class KeyValueStore(ABC):
    """String-keyed, string-valued store with last-writer-wins semantics.

    Implementations should raise StorageError when a read or write fails.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value for key, or None if it is not set."""
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Set key to value, replacing any previous value."""
        ...

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove key. Removing a missing key is not an error."""
        ...


@dataclass
class DB(KeyValueStore):
    conn: sqlite3.Connection

    def init(self) -> None:
        self.conn.executescript(SCHEMA_SQL)
        self.conn.commit()

    async def get(self, key: str) -> str | None:
        try:
            cur = self.conn.execute(
                "SELECT value FROM app_settings WHERE key = ?",
                (key,)
            )
            row = cur.fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read {key!r}: {e}") from e
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        """Set a value (upsert)."""
        try:
            self.conn.execute(
                """
                INSERT INTO app_settings (key, value, updated_at)
                VALUES (?, ?, datetime('now'))
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = datetime('now')
                """,
                (key, value)
            )
            self.conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to write {key!r}: {e}") from e

    async def remove(self, key: str) -> None:
        try:
            self.conn.execute("DELETE FROM app_settings WHERE key = ?", (key,))
            self.conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to remove {key!r}: {e}") from e


_db: DB | None = None


def init_db(settings: Settings | None = None) -> DB:
    global _db

    s = settings or Settings.from_env()
    if s.db_path != ":memory:":
        os.makedirs(os.path.dirname(s.db_path) or ".", exist_ok=True)

    conn = sqlite3.connect(s.db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row

    _db = DB(conn=conn)
    _db.init()
    logger.info(f"Opened key-value store at {s.db_path}")
    return _db


def get_db() -> DB:
    assert _db is not None, "DB not initialized"
    return _db
