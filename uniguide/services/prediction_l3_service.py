"""
L3 Prediction Service
Detailed program scoring from transcript averages extracted by OCR
"""

from typing import Dict, List, Optional, Sequence

from ..database.models import FileRecord, OcrResult, Student
from ..database.unit_of_work import UnitOfWork
from ..logger import logger
from ..prediction.batch_invoker import BatchResult
from ..prediction.schemas import (
    TRANSCRIPT_GRADES,
    TRANSCRIPT_SUBJECTS,
    L3PredictResult,
    UserInputL3,
    validate_user_input_l3,
)
from .ocr_result_service import OcrResultService
from .prediction_stage_service import PredictionStageService, StageOutcome, uni_type_flag

_SUBJECT_ALIASES = {
    alias: key for key, aliases in TRANSCRIPT_SUBJECTS.items() for alias in aliases
}


def transcript_key(subject_name: str) -> Optional[str]:
    return _SUBJECT_ALIASES.get(subject_name.strip().lower())


def _grade_scores(entries: List[OcrResult]) -> Dict[str, float]:
    """Average each subject across the semester results of one grade"""
    collected: Dict[str, List[float]] = {}
    for entry in entries:
        for score in entry.scores:
            key = transcript_key(score.subject_name)
            if key is None:
                continue
            collected.setdefault(key, []).append(score.score)

    scores = {key: 0.0 for key in TRANSCRIPT_SUBJECTS}
    for key, values in collected.items():
        scores[key] = round(sum(values) / len(values), 2)
    return scores


def build_transcript_record(ocr_results: Sequence[OcrResult],
                            files: Sequence[FileRecord]) -> Dict[str, Dict[str, float]]:
    """
    Build the hoc_ba record from completed OCR results

    Each grade needs either one full-year file or two files for different
    semesters; all grades must use the same layout. An empty record is
    returned otherwise so input validation reports what is missing.

    Args:
        ocr_results: Completed OCR results of the student
        files: Files those results belong to

    Returns:
        Dict[str, Dict[str, float]]: grade_10/11/12 subject scores
    """
    files_by_id = {f.id: f for f in files}
    by_grade: Dict[int, List[OcrResult]] = {}
    semesters: Dict[str, Optional[int]] = {}
    for result in ocr_results:
        file = files_by_id.get(result.file_id)
        if file is None or file.grade is None:
            continue
        by_grade.setdefault(file.grade, []).append(result)
        semesters[result.id] = file.semester

    if any(grade not in by_grade for grade in TRANSCRIPT_GRADES):
        logger.warning(f"L3: transcript grades present {sorted(by_grade)}, need 10, 11 and 12")
        return {}

    semester_based = all(semesters[r.id] is not None for g in TRANSCRIPT_GRADES for r in by_grade[g])
    full_year = all(semesters[r.id] is None for g in TRANSCRIPT_GRADES for r in by_grade[g])
    if not semester_based and not full_year:
        logger.warning("L3: transcript mixes semester and full-year files")
        return {}

    record: Dict[str, Dict[str, float]] = {}
    for grade in TRANSCRIPT_GRADES:
        entries = by_grade[grade]
        if semester_based:
            if len(entries) != 2 or len({semesters[e.id] for e in entries}) != 2:
                logger.warning(f"L3: grade {grade} needs one result per semester, got {len(entries)}")
                return {}
        elif len(entries) != 1:
            logger.warning(f"L3: grade {grade} needs a single full-year result, got {len(entries)}")
            return {}
        record[f"grade_{grade}"] = _grade_scores(entries)
    return record


def deduplicate_l3_results(results: Sequence[L3PredictResult]) -> List[L3PredictResult]:
    """Drop empty results and keep the first result per university/major signature"""
    seen = set()
    deduplicated = []
    for result in results:
        if result.is_empty():
            continue
        signature = result.signature()
        if signature in seen:
            continue
        seen.add(signature)
        deduplicated.append(result)
    return deduplicated


class PredictionL3Service(PredictionStageService[UserInputL3, L3PredictResult]):
    """
    Stage service for L3 predictions

    Inputs are built from the student's completed OCR results: three
    full-year transcripts or six semester transcripts.
    """

    stage = "l3"
    path = "/calculate/l3/batch"
    result_model = L3PredictResult
    wraps_items = False

    def validate(self, user_input: UserInputL3):
        return validate_user_input_l3(user_input)

    def build_user_inputs(self, student: Student, **context) -> List[UserInputL3]:
        uow: UnitOfWork = context.get("uow") or self.uow
        ocr_results = OcrResultService(uow).find_completed_for_student(student.id)
        files = uow.files.find_by_ids([r.file_id for r in ocr_results])
        hoc_ba = build_transcript_record(ocr_results, files)

        award_qg = None
        if student.awards:
            top = min(student.awards, key=lambda a: a.rank)
            award_qg = {"level": top.rank, "subject": top.subject}

        return [
            UserInputL3(
                cong_lap=uni_type_flag(student.uni_type),
                hoc_phi=student.max_budget,
                nhom_nganh=major_group,
                tinh_tp=student.province,
                hoc_ba=hoc_ba,
                award_qg=award_qg
            )
            for major_group in student.major_groups
        ]

    def combine_results(self, results: Sequence[L3PredictResult]) -> List[L3PredictResult]:
        return deduplicate_l3_results(results)

    async def predict_majors_l3_batch(self, user_inputs: Sequence[UserInputL3]) -> BatchResult:
        return await self.predict_batch(user_inputs)

    def get_l3_predict_results(self, student_id: str, user_id: Optional[str] = None) -> List[L3PredictResult]:
        return self.get_persisted_results(student_id, user_id)

    async def run_l3_prediction(self, student_id: str, user_id: Optional[str] = None,
                                uow: Optional[UnitOfWork] = None) -> StageOutcome:
        return await self.run_prediction(student_id, user_id, uow=uow)
