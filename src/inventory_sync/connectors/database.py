"""
SQLite Database Wrapper.

Owns the connection to the local inventory database and its schema:
- physical_inventory (one row per catalog product or variation)
- sync_log (append-only record of sync runs)
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator, Sequence


SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS physical_inventory (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        external_id INTEGER NOT NULL,
        title TEXT NOT NULL,
        sku TEXT NOT NULL DEFAULT '',
        category TEXT NOT NULL DEFAULT '',
        price REAL NOT NULL DEFAULT 0,
        stock INTEGER NOT NULL DEFAULT 0,
        low_stock_threshold INTEGER NOT NULL DEFAULT 5,
        is_low_stock INTEGER NOT NULL DEFAULT 0,
        image_url TEXT NOT NULL DEFAULT '',
        notes TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL,
        last_updated TEXT NOT NULL
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_inventory_external_id
    ON physical_inventory(external_id)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_inventory_sku
    ON physical_inventory(sku)
    """,
    """
    CREATE TABLE IF NOT EXISTS sync_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        sync_date TEXT NOT NULL,
        products_added INTEGER NOT NULL DEFAULT 0,
        products_updated INTEGER NOT NULL DEFAULT 0,
        status TEXT NOT NULL,
        details TEXT NOT NULL DEFAULT ''
    )
    """,
)


class Database:
    """
    Connection holder for the inventory database.

    Example:
        db = Database(Path("inventory.db"))
        db.init_schema()

        with db.transaction() as conn:
            conn.execute("UPDATE physical_inventory SET stock = 3 WHERE id = ?", (1,))
    """

    def __init__(self, path: Path | str) -> None:
        """
        Initialize the database wrapper.

        Args:
            path: Path to the SQLite file, or ":memory:"
        """
        self.path = str(path)
        self._connection: sqlite3.Connection | None = None
        # One connection is shared across threads; hold this while using it
        self._lock = threading.RLock()

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get the shared connection for the duration of a block.

        Other threads wait until the block exits, so a rollback here never
        discards another caller's uncommitted writes.
        """
        with self._lock:
            if self._connection is None:
                self._connection = self._create_connection()

            try:
                yield self._connection
            except Exception:
                self._connection.rollback()
                raise

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Run a block in a transaction; commit on success, roll back on error."""
        with self.connection() as conn:
            yield conn
            conn.commit()

    def _create_connection(self) -> sqlite3.Connection:
        """Create a new database connection."""
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            self.path,
            check_same_thread=False,
            timeout=30.0,
        )
        conn.row_factory = sqlite3.Row
        if self.path != ":memory:":
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    def init_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        with self.transaction() as conn:
            for statement in SCHEMA:
                conn.execute(statement)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        """Run a SELECT and return all rows."""
        with self.connection() as conn:
            return conn.execute(sql, params).fetchall()

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        with self.connection() as conn:
            return conn.execute(sql, params).fetchone()

    def execute_sql(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        """
        Execute a single write statement and commit.

        Returns:
            The cursor (for rowcount / lastrowid)
        """
        with self.transaction() as conn:
            return conn.execute(sql, params)
