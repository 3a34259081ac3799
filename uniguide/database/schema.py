"""
Database schema definitions
Defines the tables and indexes used by the prediction and OCR pipelines
"""

from typing import List
import sqlite3


class DatabaseSchema:
    """
    Database schema management for UniGuide

    Defines tables:
    - students: student academic profiles (profile body stored as JSON)
    - files: uploaded transcript files
    - ocr_results: one OCR extraction record per file
    - prediction_results: one L1/L2/L3 prediction record per (student, user)
    """

    TABLES = ['prediction_results', 'ocr_results', 'files', 'students']

    @staticmethod
    def get_create_tables_sql() -> List[str]:
        """
        Get SQL statements for creating all tables and indexes

        Returns:
            List[str]: SQL CREATE statements
        """
        return [
            """
            CREATE TABLE IF NOT EXISTS students (
                id TEXT PRIMARY KEY,
                user_id TEXT,
                profile_json TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS files (
                id TEXT PRIMARY KEY,
                student_id TEXT NOT NULL,
                file_name TEXT NOT NULL,
                description TEXT,
                tags_json TEXT NOT NULL DEFAULT '[]',
                created_at TIMESTAMP NOT NULL,
                FOREIGN KEY (student_id) REFERENCES students(id) ON DELETE CASCADE
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS ocr_results (
                id TEXT PRIMARY KEY,
                file_id TEXT NOT NULL UNIQUE,
                student_id TEXT NOT NULL,
                processed_by TEXT,
                status TEXT NOT NULL CHECK(status IN ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', 'PARTIAL')),
                scores_json TEXT NOT NULL DEFAULT '[]',
                document_annotation TEXT,
                error_message TEXT,
                metadata_json TEXT,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                FOREIGN KEY (file_id) REFERENCES files(id) ON DELETE CASCADE
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS prediction_results (
                id TEXT PRIMARY KEY,
                student_id TEXT NOT NULL,
                user_id TEXT,
                status TEXT NOT NULL CHECK(status IN ('PROCESSING', 'COMPLETED', 'FAILED', 'PARTIAL')),
                l1_results_json TEXT,
                l2_results_json TEXT,
                l3_results_json TEXT,
                created_by TEXT,
                updated_by TEXT,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL
            )
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_files_student_id
            ON files(student_id)
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_ocr_results_student_status
            ON ocr_results(student_id, status)
            """,
            # NULL user ids are distinct in a UNIQUE index, so guest rows are deduplicated in the repository
            """
            CREATE UNIQUE INDEX IF NOT EXISTS idx_prediction_results_student_user
            ON prediction_results(student_id, user_id)
            """
        ]

    @staticmethod
    def initialize_database(connection: sqlite3.Connection) -> None:
        """
        Initialize database with schema

        Creates all tables and indexes if they don't exist.
        Safe to call multiple times (idempotent).

        Args:
            connection: SQLite database connection
        """
        cursor = connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")

        for sql in DatabaseSchema.get_create_tables_sql():
            cursor.execute(sql)

        connection.commit()

    @staticmethod
    def drop_all_tables(connection: sqlite3.Connection) -> None:
        """
        Drop all tables from the database

        WARNING: This will delete all data. Use only for testing or cleanup.
        """
        cursor = connection.cursor()
        cursor.execute("PRAGMA foreign_keys = OFF")

        for table in DatabaseSchema.TABLES:
            cursor.execute(f"DROP TABLE IF EXISTS {table}")

        cursor.execute("PRAGMA foreign_keys = ON")
        connection.commit()
