"""
File repository
Handles database operations for uploaded transcript files
"""

from typing import List, Optional, Sequence
from datetime import datetime
import json
from .base import BaseRepository
from ..models import FileRecord


class FileRepository(BaseRepository):
    """Repository for the files table"""

    def create(self, file: FileRecord) -> FileRecord:
        query = """
            INSERT INTO files (id, student_id, file_name, description, tags_json, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """
        self._execute(query, (
            file.id,
            file.student_id,
            file.file_name,
            file.description,
            json.dumps(list(file.tags)),
            file.created_at.isoformat()
        ))
        self._commit()
        return file

    def find_by_id(self, file_id: str) -> Optional[FileRecord]:
        row = self._fetchone("SELECT * FROM files WHERE id = ?", (file_id,))
        return self._row_to_file(row) if row else None

    def find_by_ids(self, file_ids: Sequence[str]) -> List[FileRecord]:
        """
        Find files by a list of IDs

        Args:
            file_ids: File identifiers

        Returns:
            List[FileRecord]: Files found, in the order of file_ids
        """
        if not file_ids:
            return []
        placeholders = ", ".join("?" for _ in file_ids)
        rows = self._fetchall(f"SELECT * FROM files WHERE id IN ({placeholders})", tuple(file_ids))
        by_id = {row['id']: self._row_to_file(row) for row in rows}
        return [by_id[file_id] for file_id in file_ids if file_id in by_id]

    def find_by_student(self, student_id: str) -> List[FileRecord]:
        rows = self._fetchall(
            "SELECT * FROM files WHERE student_id = ? ORDER BY created_at ASC",
            (student_id,)
        )
        return [self._row_to_file(row) for row in rows]

    def _row_to_file(self, row) -> FileRecord:
        return FileRecord(
            id=row['id'],
            student_id=row['student_id'],
            file_name=row['file_name'],
            description=row['description'],
            tags=json.loads(row['tags_json'] or "[]"),
            created_at=datetime.fromisoformat(row['created_at'])
        )
