"""
Database connection management
Provides SQLite connection handling for file-backed and in-memory databases
"""

import sqlite3
import threading
import uuid
from typing import Optional

MEMORY_DATABASE = ":memory:"


class DatabaseConnection:
    """
    Database connection manager for SQLite

    File databases get one connection per thread. An in-memory database is
    opened as a named shared-cache database, so every thread shares a single
    connection and dedicated connections from open() see the same data while
    that connection stays open.
    """

    def __init__(self, db_path: str = "uniguide.db"):
        """
        Initialize database connection manager

        Args:
            db_path: Path to the SQLite database file, or ":memory:"
        """
        self.db_path = db_path
        self._local = threading.local()
        self._shared: Optional[sqlite3.Connection] = None
        self._memory_uri: Optional[str] = None
        if db_path == MEMORY_DATABASE:
            self._memory_uri = f"file:uniguide-{uuid.uuid4().hex}?mode=memory&cache=shared"

    def _connect(self) -> sqlite3.Connection:
        if self._memory_uri is not None:
            connection = sqlite3.connect(self._memory_uri, uri=True, check_same_thread=False)
        else:
            connection = sqlite3.connect(self.db_path, check_same_thread=False)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        return connection

    def get_connection(self) -> sqlite3.Connection:
        """
        Get or create a connection for the current thread

        Returns:
            sqlite3.Connection: Database connection
        """
        if self._memory_uri is not None:
            if self._shared is None:
                self._shared = self._connect()
            return self._shared

        if not hasattr(self._local, 'connection'):
            self._local.connection = self._connect()
        return self._local.connection

    def open(self) -> sqlite3.Connection:
        """
        Open a dedicated connection to the same database

        The caller owns the connection and must close it. For an in-memory
        database the shared connection is opened first so the data outlives
        the dedicated one.

        Returns:
            sqlite3.Connection: New database connection
        """
        if self._memory_uri is not None:
            self.get_connection()
        return self._connect()

    def close(self):
        """Close the connection for the current thread"""
        if self._shared is not None:
            self._shared.close()
            self._shared = None
        if hasattr(self._local, 'connection'):
            self._local.connection.close()
            delattr(self._local, 'connection')
