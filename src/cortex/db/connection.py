"""SQLite connection layer."""

from __future__ import annotations

import sqlite3
from pathlib import Path

# Seconds a writer waits on a locked database before sqlite3 raises.
_BUSY_TIMEOUT = 5.0


class Database:
    """Project database file holding documents, topics, provider settings, and conversations.

    Use as a context manager for a short-lived connection, or call
    ``connect()`` and close the connection yourself.
    """

    def __init__(self, db_path: Path | str, busy_timeout: float = _BUSY_TIMEOUT) -> None:
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Open a connection with Row access, foreign keys, and WAL journaling."""
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def __enter__(self) -> sqlite3.Connection:
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
