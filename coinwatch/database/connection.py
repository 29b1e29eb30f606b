"""
SQLite database connection and schema management.
"""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from coinwatch.exceptions import StoreError


class Database:
    """SQLite database connection manager."""

    def __init__(self, db_path: str):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory DB.
        """
        self.db_path = db_path
        self._connection: Optional[sqlite3.Connection] = None
        # One connection is shared by the command loop and the scheduler thread.
        self._lock = threading.RLock()
        self._connect()

    def _connect(self) -> None:
        """Establish database connection."""
        if self.db_path != ":memory:":
            # Ensure parent directory exists
            path = Path(self.db_path)
            path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        # Enable foreign keys
        self._connection.execute("PRAGMA foreign_keys = ON")

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the database connection."""
        if self._connection is None:
            raise sqlite3.ProgrammingError("Database connection is closed")
        return self._connection

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """
        Run a group of statements atomically.

        Commits on success and rolls back on failure. Any sqlite3 error
        (including use after close) surfaces as StoreError.

        Yields:
            Cursor bound to the shared connection
        """
        with self._lock:
            try:
                connection = self.connection
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e
            try:
                cursor = connection.cursor()
                yield cursor
                connection.commit()
            except sqlite3.Error as e:
                connection.rollback()
                raise StoreError(str(e)) from e
            except Exception:
                connection.rollback()
                raise

    def initialize(self) -> None:
        """Create database schema if it doesn't exist."""
        with self.transaction() as cursor:
            # Create users table
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    telegram_id TEXT NOT NULL UNIQUE,
                    first_name TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            # Create user_favorites table
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS user_favorites (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    coin_id TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
                    UNIQUE (user_id, coin_id)
                )
            """)

            # Create user_alerts table
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS user_alerts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    coin_id TEXT NOT NULL,
                    target_price REAL NOT NULL,
                    direction TEXT NOT NULL CHECK (direction IN ('above', 'below')),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
                )
            """)

            # Create indexes for common queries
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_favorites_user ON user_favorites(user_id)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_alerts_user ON user_alerts(user_id)
            """)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.transaction() as cursor:
                cursor.execute("SELECT 1")
                return cursor.fetchone() is not None
        except StoreError:
            return False

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None
