"""
Prediction result repository
Handles database operations for L1/L2/L3 prediction results
"""

from typing import Optional
from datetime import datetime
from .base import BaseRepository
from ..models import PredictionResult, PredictionStatus


class PredictionResultRepository(BaseRepository):
    """
    Repository for prediction result operations

    There is at most one row per (student_id, user_id). A NULL user_id
    identifies the guest prediction for that student.
    """

    def find_by_id(self, result_id: str) -> Optional[PredictionResult]:
        row = self._fetchone("SELECT * FROM prediction_results WHERE id = ?", (result_id,))
        return self._row_to_result(row) if row else None

    def find_by_student_and_user(self, student_id: str,
                                 user_id: Optional[str]) -> Optional[PredictionResult]:
        """
        Find the prediction result owned by exactly this user

        Args:
            student_id: Student identifier
            user_id: Owning user, None selects the guest row

        Returns:
            Optional[PredictionResult]: Prediction result or None if not found
        """
        if user_id is None:
            row = self._fetchone(
                "SELECT * FROM prediction_results WHERE student_id = ? AND user_id IS NULL",
                (student_id,)
            )
        else:
            row = self._fetchone(
                "SELECT * FROM prediction_results WHERE student_id = ? AND user_id = ?",
                (student_id, user_id)
            )
        return self._row_to_result(row) if row else None

    def save(self, result: PredictionResult) -> PredictionResult:
        """
        Insert or update a prediction result by id

        Args:
            result: PredictionResult model instance

        Returns:
            PredictionResult: Saved prediction result
        """
        query = """
            INSERT INTO prediction_results
            (id, student_id, user_id, status, l1_results_json, l2_results_json,
             l3_results_json, created_by, updated_by, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status = excluded.status,
                l1_results_json = excluded.l1_results_json,
                l2_results_json = excluded.l2_results_json,
                l3_results_json = excluded.l3_results_json,
                updated_by = excluded.updated_by,
                updated_at = excluded.updated_at
        """
        self._execute(query, (
            result.id,
            result.student_id,
            result.user_id,
            result.status.value,
            self._dumps(result.l1_results),
            self._dumps(result.l2_results),
            self._dumps(result.l3_results),
            result.created_by,
            result.updated_by,
            result.created_at.isoformat(),
            result.updated_at.isoformat()
        ))
        self._commit()
        return result

    def delete(self, result_id: str) -> bool:
        cursor = self._execute("DELETE FROM prediction_results WHERE id = ?", (result_id,))
        self._commit()
        return cursor.rowcount > 0

    def _row_to_result(self, row) -> PredictionResult:
        return PredictionResult(
            id=row['id'],
            student_id=row['student_id'],
            user_id=row['user_id'],
            status=PredictionStatus(row['status']),
            l1_results=self._loads(row['l1_results_json']),
            l2_results=self._loads(row['l2_results_json']),
            l3_results=self._loads(row['l3_results_json']),
            created_by=row['created_by'],
            updated_by=row['updated_by'],
            created_at=datetime.fromisoformat(row['created_at']),
            updated_at=datetime.fromisoformat(row['updated_at'])
        )
