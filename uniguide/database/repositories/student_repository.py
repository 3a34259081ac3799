"""
Student repository
Handles database operations for student academic profiles
"""

from typing import Any, Dict, Optional
from datetime import datetime
import json
from .base import BaseRepository
from ..models import (
    Award,
    ExamScenario,
    GradeRecord,
    LanguageCertification,
    SpecialStudentCase,
    Student,
    UniType,
)


class StudentRepository(BaseRepository):
    """
    Repository for student profile operations

    The profile body is stored as a JSON document; id and user_id are columns
    so ownership checks stay in SQL.
    """

    def save(self, student: Student) -> Student:
        """
        Insert or replace a student profile

        Args:
            student: Student model instance

        Returns:
            Student: Saved student
        """
        query = """
            INSERT INTO students (id, user_id, profile_json, created_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                user_id = excluded.user_id,
                profile_json = excluded.profile_json
        """
        self._execute(query, (
            student.id,
            student.user_id,
            json.dumps(self._profile_to_dict(student)),
            student.created_at.isoformat()
        ))
        self._commit()
        return student

    def find_by_id(self, student_id: str) -> Optional[Student]:
        """
        Find student by ID

        Args:
            student_id: Student identifier

        Returns:
            Optional[Student]: Student or None if not found
        """
        row = self._fetchone("SELECT * FROM students WHERE id = ?", (student_id,))
        return self._row_to_student(row) if row else None

    def delete(self, student_id: str) -> bool:
        cursor = self._execute("DELETE FROM students WHERE id = ?", (student_id,))
        self._commit()
        return cursor.rowcount > 0

    @staticmethod
    def _profile_to_dict(student: Student) -> Dict[str, Any]:
        return {
            "province": student.province,
            "max_budget": student.max_budget,
            "uni_type": student.uni_type.value,
            "major_groups": list(student.major_groups),
            "awards": [{"subject": a.subject, "rank": a.rank} for a in student.awards],
            "special_cases": [case.value for case in student.special_cases],
            "grade_records": [
                {"grade": r.grade, "conduct": r.conduct, "academic_performance": r.academic_performance}
                for r in student.grade_records
            ],
            "exam_scenarios": [
                {"subject_group": s.subject_group, "score": s.score, "exam_type": s.exam_type}
                for s in student.exam_scenarios
            ],
            "language_certifications": [
                {"name": c.name, "level": c.level} for c in student.language_certifications
            ],
        }

    def _row_to_student(self, row) -> Student:
        profile = json.loads(row['profile_json'])
        return Student(
            id=row['id'],
            user_id=row['user_id'],
            province=profile["province"],
            max_budget=profile["max_budget"],
            uni_type=UniType(profile["uni_type"]),
            major_groups=list(profile.get("major_groups", [])),
            awards=[Award(**a) for a in profile.get("awards", [])],
            special_cases=[SpecialStudentCase(c) for c in profile.get("special_cases", [])],
            grade_records=[GradeRecord(**r) for r in profile.get("grade_records", [])],
            exam_scenarios=[ExamScenario(**s) for s in profile.get("exam_scenarios", [])],
            language_certifications=[
                LanguageCertification(**c) for c in profile.get("language_certifications", [])
            ],
            created_at=datetime.fromisoformat(row['created_at'])
        )
