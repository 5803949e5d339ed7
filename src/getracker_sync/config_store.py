"""Grouped key-value configuration stores.

The host's durable per-user storage. Everything above this layer talks to
the ``ConfigStore`` protocol, so the SQLite store can be swapped for the
in-memory one in tests.
"""

import logging
import os
import sqlite3
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class ConfigStore(Protocol):
    """String values addressed by (group, key)."""

    def get_configuration(self, group: str, key: str) -> Optional[str]:
        ...

    def set_configuration(self, group: str, key: str, value: str) -> None:
        ...

    def unset_configuration(self, group: str, key: str) -> None:
        ...


class MemoryConfigStore:
    """Non-durable store backed by a dict."""

    def __init__(self):
        self._values: dict[tuple[str, str], str] = {}

    def get_configuration(self, group: str, key: str) -> Optional[str]:
        return self._values.get((group, key))

    def set_configuration(self, group: str, key: str, value: str) -> None:
        self._values[(group, key)] = value

    def unset_configuration(self, group: str, key: str) -> None:
        self._values.pop((group, key), None)

    def keys(self, group: str) -> list[str]:
        return sorted(k for g, k in self._values if g == group)


class SQLiteConfigStore:
    """
    Durable configuration store using SQLite.

    One row per (group, key). Writes are committed immediately.
    """

    def __init__(self, db_path: str):
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database (":memory:" for a private in-memory db)
        """
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    def init_schema(self) -> None:
        """Open the database and create the table if needed."""
        if self._conn is not None:
            return

        if self.db_path != ":memory:":
            directory = os.path.dirname(self.db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

        self._conn = sqlite3.connect(self.db_path)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS configuration (
                grp TEXT NOT NULL,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (grp, key)
            )
        """)
        self._conn.commit()
        logger.info(f"Configuration store initialized at {self.db_path}")

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self.init_schema()
        return self._conn

    def get_configuration(self, group: str, key: str) -> Optional[str]:
        cursor = self._connection().execute(
            "SELECT value FROM configuration WHERE grp = ? AND key = ?",
            (group, key),
        )
        row = cursor.fetchone()
        return row[0] if row else None

    def set_configuration(self, group: str, key: str, value: str) -> None:
        conn = self._connection()
        conn.execute(
            "INSERT INTO configuration (grp, key, value) VALUES (?, ?, ?) "
            "ON CONFLICT(grp, key) DO UPDATE SET value = excluded.value, "
            "updated_at = CURRENT_TIMESTAMP",
            (group, key, value),
        )
        conn.commit()

    def unset_configuration(self, group: str, key: str) -> None:
        conn = self._connection()
        conn.execute(
            "DELETE FROM configuration WHERE grp = ? AND key = ?",
            (group, key),
        )
        conn.commit()

    def keys(self, group: str) -> list[str]:
        """List the keys stored in a group."""
        cursor = self._connection().execute(
            "SELECT key FROM configuration WHERE grp = ? ORDER BY key",
            (group,),
        )
        return [row[0] for row in cursor]

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
