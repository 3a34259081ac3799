"""
Unit of Work pattern implementation
Provides transaction management across multiple repositories
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator, Optional
from .connection import DatabaseConnection
from .repositories.file_repository import FileRepository
from .repositories.ocr_result_repository import OcrResultRepository
from .repositories.prediction_result_repository import PredictionResultRepository
from .repositories.student_repository import StudentRepository


class UnitOfWork:
    """
    Unit of Work pattern for managing transactions across repositories

    Repositories commit on their own outside a transaction. Inside
    transaction() they leave the commit to the unit of work, so every write in
    the block is committed or rolled back together.

    Transaction state belongs to the connection, so a flow that must not share
    it with other coroutines opens its own handle with session().

    Example:
        with closing(uow.session()) as session, session.transaction():
            result = session.prediction_results.find_by_student_and_user(student_id, user_id)
            session.prediction_results.save(updated)
    """

    def __init__(self, db_conn: DatabaseConnection,
                 connection: Optional[sqlite3.Connection] = None):
        """
        Initialize Unit of Work

        Args:
            db_conn: Database connection manager
            connection: Dedicated connection owned by this unit of work
                (defaults to the manager's shared connection)
        """
        self.db = db_conn
        self._owns_connection = connection is not None
        self.connection = connection or db_conn.get_connection()
        self._depth = 0

        in_transaction = self.in_transaction
        self.students = StudentRepository(self.connection, in_transaction)
        self.files = FileRepository(self.connection, in_transaction)
        self.ocr_results = OcrResultRepository(self.connection, in_transaction)
        self.prediction_results = PredictionResultRepository(self.connection, in_transaction)

    def session(self) -> 'UnitOfWork':
        """Unit of work over a dedicated connection to the same database; close() it when done"""
        return UnitOfWork(self.db, connection=self.db.open())

    def close(self) -> None:
        if self._owns_connection:
            self.connection.close()

    def in_transaction(self) -> bool:
        return self._depth > 0

    def commit(self) -> None:
        self.connection.commit()

    def rollback(self) -> None:
        self.connection.rollback()

    @contextmanager
    def transaction(self) -> Generator['UnitOfWork', None, None]:
        """
        Context manager for transactions

        The outermost block takes the write lock up front with BEGIN IMMEDIATE
        and commits on success or rolls back on exception. Nested blocks run in
        a savepoint: a failing inner block undoes only its own writes and the
        outer block decides what is committed.

        Yields:
            UnitOfWork: This instance
        """
        savepoint = f"uow_{self._depth}"
        if self._depth == 0:
            if self.connection.in_transaction:
                self.connection.commit()
            self.connection.execute("BEGIN IMMEDIATE")
        else:
            self.connection.execute(f"SAVEPOINT {savepoint}")
        self._depth += 1
        try:
            yield self
        except Exception:
            self._depth -= 1
            if self._depth == 0:
                self.rollback()
            else:
                self.connection.execute(f"ROLLBACK TO {savepoint}")
                self.connection.execute(f"RELEASE {savepoint}")
            raise
        self._depth -= 1
        if self._depth == 0:
            self.commit()
        else:
            self.connection.execute(f"RELEASE {savepoint}")
