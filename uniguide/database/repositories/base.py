"""
Base repository class
Provides common database operations for all repositories
"""

from abc import ABC
from typing import Callable, Optional, List
import json
import sqlite3


class BaseRepository(ABC):
    """
    Base repository with common database operations

    All repository classes inherit from this base class to get common query
    execution methods. Writes commit immediately unless the owning unit of
    work has a transaction open.
    """

    def __init__(self, connection: sqlite3.Connection,
                 in_transaction: Optional[Callable[[], bool]] = None):
        """
        Initialize repository with database connection

        Args:
            connection: SQLite database connection
            in_transaction: Reports whether a unit-of-work transaction is open
        """
        self.connection = connection
        self._in_transaction = in_transaction or (lambda: False)

    def _execute(self, query: str, params: tuple = ()) -> sqlite3.Cursor:
        cursor = self.connection.cursor()
        cursor.execute(query, params)
        return cursor

    def _fetchone(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        cursor = self._execute(query, params)
        row = cursor.fetchone()
        cursor.close()
        return row

    def _fetchall(self, query: str, params: tuple = ()) -> List[sqlite3.Row]:
        cursor = self._execute(query, params)
        return cursor.fetchall()

    def _commit(self) -> None:
        """Commit unless the surrounding unit of work owns the transaction"""
        if not self._in_transaction():
            self.connection.commit()

    @staticmethod
    def _dumps(value) -> Optional[str]:
        return json.dumps(value) if value is not None else None

    @staticmethod
    def _loads(raw: Optional[str]):
        return json.loads(raw) if raw else None
