"""
Data models for database entities
Defines frozen dataclasses, enums and the update functions that move them between states
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional
import re

from ..exceptions import InvalidStateTransitionError

_GRADE_PATTERN = re.compile(r"\b(10|11|12)\b")
_SEMESTER_PATTERN = re.compile(r"semester\s*([1-2])", re.IGNORECASE)
_SEMESTER_TAGS = {
    "1": 1, "sem-1": 1, "semester-1": 1,
    "2": 2, "sem-2": 2, "semester-2": 2,
}


class PredictionStatus(Enum):
    """Status of a student's prediction result"""
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"


class OcrStatus(Enum):
    """Status of the OCR extraction for a single file"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"


class UniType(Enum):
    """Preferred university ownership"""
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"


class SpecialStudentCase(Enum):
    """Priority categories that map to binary flags in L1 inputs"""
    HEROES_AND_CONTRIBUTORS = "HEROES_AND_CONTRIBUTORS"
    VERY_FEW_ETHNIC_MINORITY = "VERY_FEW_ETHNIC_MINORITY"
    ETHNIC_MINORITY_STUDENT = "ETHNIC_MINORITY_STUDENT"
    TRANSFER_STUDENT = "TRANSFER_STUDENT"


PREDICTION_TERMINAL_STATUSES: FrozenSet[PredictionStatus] = frozenset({
    PredictionStatus.COMPLETED,
    PredictionStatus.FAILED,
    PredictionStatus.PARTIAL,
})

OCR_TERMINAL_STATUSES: FrozenSet[OcrStatus] = frozenset({
    OcrStatus.COMPLETED,
    OcrStatus.FAILED,
    OcrStatus.PARTIAL,
})

_OCR_TRANSITIONS: Dict[OcrStatus, FrozenSet[OcrStatus]] = {
    OcrStatus.PENDING: frozenset({OcrStatus.PROCESSING}) | OCR_TERMINAL_STATUSES,
    OcrStatus.PROCESSING: OCR_TERMINAL_STATUSES,
    OcrStatus.COMPLETED: frozenset(),
    OcrStatus.FAILED: frozenset(),
    OcrStatus.PARTIAL: frozenset(),
}


@dataclass(frozen=True)
class SubjectScore:
    """A single subject score extracted from a transcript, on a 0-10 scale"""
    subject_name: str
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return {"subject_name": self.subject_name, "score": self.score}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SubjectScore":
        return cls(subject_name=data["subject_name"], score=float(data["score"]))


@dataclass(frozen=True)
class OcrMetadata:
    """Observability data stamped on OCR results when a batch finishes"""
    extracted_at: datetime
    processing_time_ms: int
    total_files_processed: int
    successful_files: int
    failed_files: int
    ocr_model: str = "unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "extracted_at": self.extracted_at.isoformat(),
            "processing_time_ms": self.processing_time_ms,
            "total_files_processed": self.total_files_processed,
            "successful_files": self.successful_files,
            "failed_files": self.failed_files,
            "ocr_model": self.ocr_model,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OcrMetadata":
        return cls(
            extracted_at=datetime.fromisoformat(data["extracted_at"]),
            processing_time_ms=int(data["processing_time_ms"]),
            total_files_processed=int(data["total_files_processed"]),
            successful_files=int(data["successful_files"]),
            failed_files=int(data["failed_files"]),
            ocr_model=data.get("ocr_model", "unknown"),
        )


@dataclass(frozen=True)
class Award:
    """National excellent student award; rank 1 is first prize"""
    subject: str
    rank: int


@dataclass(frozen=True)
class GradeRecord:
    """Conduct and academic performance ranks (1 best .. 4 worst) for one school year"""
    grade: int
    conduct: int
    academic_performance: int


@dataclass(frozen=True)
class ExamScenario:
    """A subject group and benchmark score the student can apply with"""
    subject_group: str
    score: float
    exam_type: str = "national"


@dataclass(frozen=True)
class LanguageCertification:
    """Foreign language certificate such as CEFR B2 or JLPT N3"""
    name: str
    level: str


@dataclass(frozen=True)
class Student:
    """
    Student academic profile

    Read-only input to the prediction stages. Profiles are owned by the
    registration flow; the prediction core only reads them.

    Attributes:
        id: Student profile identifier
        province: Province or city the student applies from
        max_budget: Maximum tuition per year (VND)
        uni_type: Preferred university ownership
        major_groups: Major group codes the student is interested in
        user_id: Owning user, None for guest profiles
        awards: National excellent student awards
        special_cases: Priority categories
        grade_records: Conduct/performance per grade 10-12
        exam_scenarios: Subject group scores usable for L2
        language_certifications: Certificates usable for L2
        created_at: Registration timestamp
    """
    id: str
    province: str
    max_budget: int
    uni_type: UniType
    major_groups: List[int]
    user_id: Optional[str] = None
    awards: List[Award] = field(default_factory=list)
    special_cases: List[SpecialStudentCase] = field(default_factory=list)
    grade_records: List[GradeRecord] = field(default_factory=list)
    exam_scenarios: List[ExamScenario] = field(default_factory=list)
    language_certifications: List[LanguageCertification] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)

    def grade_record(self, grade: int) -> Optional[GradeRecord]:
        return next((record for record in self.grade_records if record.grade == grade), None)


@dataclass(frozen=True)
class FileRecord:
    """
    Uploaded transcript file

    Grade and semester are read from the description, then tags, then the file name.
    """
    id: str
    student_id: str
    file_name: str
    created_at: datetime
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    @property
    def grade(self) -> Optional[int]:
        if self.description:
            match = _GRADE_PATTERN.search(self.description)
            if match:
                return int(match.group(1))
        for tag in self.tags:
            if tag in ("10", "11", "12"):
                return int(tag)
        match = _GRADE_PATTERN.search(self.file_name or "")
        return int(match.group(1)) if match else None

    @property
    def semester(self) -> Optional[int]:
        if self.description:
            match = _SEMESTER_PATTERN.search(self.description)
            if match:
                return int(match.group(1))
        for tag in self.tags:
            semester = _SEMESTER_TAGS.get(tag.lower())
            if semester:
                return semester
        match = _SEMESTER_PATTERN.search(self.file_name or "")
        return int(match.group(1)) if match else None


@dataclass(frozen=True)
class OcrResult:
    """
    OCR result model

    Exactly one row exists per file. It is created PENDING when a batch is
    submitted and updated in place as extraction completes.

    Attributes:
        id: Unique OCR result identifier
        file_id: Foreign key to files table
        student_id: Foreign key to students table
        status: Current extraction status
        created_at: Row creation timestamp
        updated_at: Last modification timestamp
        processed_by: User who submitted the file (nullable for guests)
        scores: Extracted subject scores
        document_annotation: Raw extraction text (nullable)
        error_message: Failure details (nullable)
        metadata: Batch observability data (nullable)
    """
    id: str
    file_id: str
    student_id: str
    status: OcrStatus
    created_at: datetime
    updated_at: datetime
    processed_by: Optional[str] = None
    scores: List[SubjectScore] = field(default_factory=list)
    document_annotation: Optional[str] = None
    error_message: Optional[str] = None
    metadata: Optional[OcrMetadata] = None

    def is_successful(self) -> bool:
        return self.status == OcrStatus.COMPLETED and len(self.scores) > 0

    def score_for(self, subject_name: str) -> Optional[SubjectScore]:
        wanted = subject_name.lower()
        return next((s for s in self.scores if s.subject_name.lower() == wanted), None)


@dataclass(frozen=True)
class PredictionResult:
    """
    Prediction result model

    One per (student_id, user_id). The stage result lists keep the JSON
    shape returned by the prediction service.

    Attributes:
        id: Unique prediction result identifier
        student_id: Foreign key to students table
        status: Current prediction status
        created_at: Row creation timestamp
        updated_at: Last modification timestamp
        user_id: Owning user, None for guest predictions
        l1_results: L1 results ({loai_uu_tien, ma_xet_tuyen})
        l2_results: L2 results ({ma_xet_tuyen, score})
        l3_results: L3 results ({result: {university: [items]}})
        created_by: Creator identity
        updated_by: Last modifier identity
    """
    id: str
    student_id: str
    status: PredictionStatus
    created_at: datetime
    updated_at: datetime
    user_id: Optional[str] = None
    l1_results: Optional[List[Dict[str, Any]]] = None
    l2_results: Optional[List[Dict[str, Any]]] = None
    l3_results: Optional[List[Dict[str, Any]]] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in PREDICTION_TERMINAL_STATUSES


def transition_prediction(
    result: PredictionResult,
    status: PredictionStatus,
    now: Optional[datetime] = None,
    **patch: Any
) -> PredictionResult:
    """
    Move a prediction result forward to a terminal status

    Args:
        result: Current prediction result
        status: Target status (must be terminal)
        now: Timestamp for updated_at (defaults to utcnow)
        **patch: Additional fields to change

    Returns:
        PredictionResult: New value with the status and patch applied

    Raises:
        InvalidStateTransitionError: If the result is not PROCESSING or the target is not terminal
    """
    if result.status != PredictionStatus.PROCESSING or status not in PREDICTION_TERMINAL_STATUSES:
        raise InvalidStateTransitionError(
            f"Prediction result {result.id} cannot move from {result.status.value} to {status.value}"
        )
    return replace(result, status=status, updated_at=now or datetime.utcnow(), **patch)


def restart_prediction(
    result: PredictionResult,
    updated_by: Optional[str] = None,
    now: Optional[datetime] = None,
    **patch: Any
) -> PredictionResult:
    """
    Reopen a prediction result for a new prediction run

    A new run overwrites the previous one, so any status may go back to PROCESSING.
    """
    return replace(
        result,
        status=PredictionStatus.PROCESSING,
        updated_at=now or datetime.utcnow(),
        updated_by=updated_by,
        **patch
    )


def transition_ocr(
    result: OcrResult,
    status: OcrStatus,
    now: Optional[datetime] = None,
    **patch: Any
) -> OcrResult:
    """
    Move an OCR result along PENDING -> PROCESSING -> terminal

    Re-applying the current terminal status is accepted so bulk updates stay idempotent.

    Raises:
        InvalidStateTransitionError: If the move goes backwards or leaves a terminal status
    """
    allowed = _OCR_TRANSITIONS[result.status]
    if status not in allowed and not (status == result.status and status in OCR_TERMINAL_STATUSES):
        raise InvalidStateTransitionError(
            f"OCR result {result.id} cannot move from {result.status.value} to {status.value}"
        )
    return replace(result, status=status, updated_at=now or datetime.utcnow(), **patch)
