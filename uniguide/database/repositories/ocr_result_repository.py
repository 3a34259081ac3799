"""
OCR result repository
Handles database operations for per-file OCR results
"""

from typing import List, Optional, Sequence
from datetime import datetime
from .base import BaseRepository
from ..models import OcrMetadata, OcrResult, OcrStatus, SubjectScore


class OcrResultRepository(BaseRepository):
    """
    Repository for OCR result operations

    Provides CRUD operations and queries for the ocr_results table.
    """

    def create(self, result: OcrResult) -> OcrResult:
        """
        Create a new OCR result

        Args:
            result: OcrResult model instance

        Returns:
            OcrResult: Created OCR result
        """
        query = """
            INSERT INTO ocr_results
            (id, file_id, student_id, processed_by, status, scores_json,
             document_annotation, error_message, metadata_json, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        self._execute(query, (
            result.id,
            result.file_id,
            result.student_id,
            result.processed_by,
            result.status.value,
            self._dumps([s.to_dict() for s in result.scores]),
            result.document_annotation,
            result.error_message,
            self._dumps(result.metadata.to_dict() if result.metadata else None),
            result.created_at.isoformat(),
            result.updated_at.isoformat()
        ))
        self._commit()
        return result

    def update(self, result: OcrResult) -> OcrResult:
        query = """
            UPDATE ocr_results
            SET status = ?, scores_json = ?, document_annotation = ?,
                error_message = ?, metadata_json = ?, updated_at = ?
            WHERE id = ?
        """
        self._execute(query, (
            result.status.value,
            self._dumps([s.to_dict() for s in result.scores]),
            result.document_annotation,
            result.error_message,
            self._dumps(result.metadata.to_dict() if result.metadata else None),
            result.updated_at.isoformat(),
            result.id
        ))
        self._commit()
        return result

    def update_many(self, results: Sequence[OcrResult]) -> List[OcrResult]:
        """Update several OCR results with a single commit"""
        query = """
            UPDATE ocr_results
            SET status = ?, scores_json = ?, document_annotation = ?,
                error_message = ?, metadata_json = ?, updated_at = ?
            WHERE id = ?
        """
        cursor = self.connection.cursor()
        cursor.executemany(query, [
            (
                r.status.value,
                self._dumps([s.to_dict() for s in r.scores]),
                r.document_annotation,
                r.error_message,
                self._dumps(r.metadata.to_dict() if r.metadata else None),
                r.updated_at.isoformat(),
                r.id
            )
            for r in results
        ])
        self._commit()
        return list(results)

    def find_by_id(self, result_id: str) -> Optional[OcrResult]:
        row = self._fetchone("SELECT * FROM ocr_results WHERE id = ?", (result_id,))
        return self._row_to_result(row) if row else None

    def find_by_file_ids(self, file_ids: Sequence[str]) -> List[OcrResult]:
        """
        Find OCR results for a list of files

        Args:
            file_ids: File identifiers

        Returns:
            List[OcrResult]: Existing rows for those files
        """
        if not file_ids:
            return []
        placeholders = ", ".join("?" for _ in file_ids)
        rows = self._fetchall(
            f"SELECT * FROM ocr_results WHERE file_id IN ({placeholders})",
            tuple(file_ids)
        )
        return [self._row_to_result(row) for row in rows]

    def find_by_student(self, student_id: str,
                        status: Optional[OcrStatus] = None) -> List[OcrResult]:
        """
        Find OCR results for a student, oldest first

        Args:
            student_id: Student identifier
            status: Optional status filter

        Returns:
            List[OcrResult]: Matching OCR results
        """
        if status is None:
            rows = self._fetchall(
                "SELECT * FROM ocr_results WHERE student_id = ? ORDER BY created_at ASC",
                (student_id,)
            )
        else:
            rows = self._fetchall(
                "SELECT * FROM ocr_results WHERE student_id = ? AND status = ? ORDER BY created_at ASC",
                (student_id, status.value)
            )
        return [self._row_to_result(row) for row in rows]

    def count_by_student_and_status(self, student_id: str, status: OcrStatus) -> int:
        row = self._fetchone(
            "SELECT COUNT(*) AS total FROM ocr_results WHERE student_id = ? AND status = ?",
            (student_id, status.value)
        )
        return row['total'] if row else 0

    def _row_to_result(self, row) -> OcrResult:
        """
        Convert database row to OcrResult model

        Args:
            row: SQLite row object

        Returns:
            OcrResult: OcrResult model instance
        """
        metadata = self._loads(row['metadata_json'])
        return OcrResult(
            id=row['id'],
            file_id=row['file_id'],
            student_id=row['student_id'],
            processed_by=row['processed_by'],
            status=OcrStatus(row['status']),
            scores=[SubjectScore.from_dict(s) for s in self._loads(row['scores_json']) or []],
            document_annotation=row['document_annotation'],
            error_message=row['error_message'],
            metadata=OcrMetadata.from_dict(metadata) if metadata else None,
            created_at=datetime.fromisoformat(row['created_at']),
            updated_at=datetime.fromisoformat(row['updated_at'])
        )
