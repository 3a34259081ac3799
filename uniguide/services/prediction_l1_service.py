"""
L1 Prediction Service
Initial prioritization of programs from priority categories and national awards
"""

from typing import Dict, List, Optional, Sequence, Tuple

from ..database.models import SpecialStudentCase, Student
from ..logger import logger
from ..prediction.batch_invoker import BatchResult
from ..prediction.schemas import HSG_SUBJECTS, L1PredictResult, UserInputL1, validate_user_input_l1
from .prediction_stage_service import PredictionStageService, StageOutcome, uni_type_flag

_SPECIAL_CASE_FLAGS = {
    SpecialStudentCase.HEROES_AND_CONTRIBUTORS: "ahld",
    SpecialStudentCase.VERY_FEW_ETHNIC_MINORITY: "dan_toc_thieu_so",
    SpecialStudentCase.ETHNIC_MINORITY_STUDENT: "haimuoi_huyen_ngheo_tnb",
}


def combine_l1_results(results: Sequence[L1PredictResult]) -> List[L1PredictResult]:
    """
    Keep the best score per admission code, grouped by priority type

    When an admission code appears under several priority types it stays
    under the one that gave it the highest score.
    """
    best: Dict[str, Tuple[str, float]] = {}
    for result in results:
        for code, score in result.ma_xet_tuyen.items():
            current = best.get(code)
            if current is None or score > current[1]:
                best[code] = (result.loai_uu_tien, score)

    grouped: Dict[str, Dict[str, float]] = {}
    for code, (priority_type, score) in best.items():
        grouped.setdefault(priority_type, {})[code] = score

    return [
        L1PredictResult(loai_uu_tien=priority_type, ma_xet_tuyen=codes)
        for priority_type, codes in grouped.items()
    ]


class PredictionL1Service(PredictionStageService[UserInputL1, L1PredictResult]):
    """
    Stage service for L1 predictions

    One input is built per (award, major group); a student without awards
    gets a single award-less input per major group.
    """

    stage = "l1"
    path = "/predict/l1/batch"
    result_model = L1PredictResult

    def validate(self, user_input: UserInputL1):
        return validate_user_input_l1(user_input)

    def build_user_inputs(self, student: Student, **context) -> List[UserInputL1]:
        flags = {flag: 0 for flag in _SPECIAL_CASE_FLAGS.values()}
        for case in student.special_cases:
            flag = _SPECIAL_CASE_FLAGS.get(case)
            if flag:
                flags[flag] = 1

        award_slots: List[Dict[str, object]] = []
        for rank in (1, 2, 3):
            for award in (a for a in student.awards if a.rank == rank):
                subject = HSG_SUBJECTS.get(award.subject.upper(), award.subject)
                slots = {"hsg_1": 0, "hsg_2": 0, "hsg_3": 0}
                slots[f"hsg_{rank}"] = subject
                award_slots.append(slots)
        if not award_slots:
            award_slots.append({"hsg_1": 0, "hsg_2": 0, "hsg_3": 0})

        return [
            UserInputL1(
                cong_lap=uni_type_flag(student.uni_type),
                hoc_phi=student.max_budget,
                nhom_nganh=major_group,
                tinh_tp=student.province,
                **flags,
                **slots
            )
            for slots in award_slots
            for major_group in student.major_groups
        ]

    def combine_results(self, results: Sequence[L1PredictResult]) -> List[L1PredictResult]:
        return combine_l1_results(results)

    async def predict_majors_l1_batch(self, user_inputs: Sequence[UserInputL1]) -> BatchResult:
        return await self.predict_batch(user_inputs)

    def get_l1_predict_results(self, student_id: str, user_id: Optional[str] = None) -> List[L1PredictResult]:
        return self.get_persisted_results(student_id, user_id)

    async def run_l1_prediction(self, student_id: str, user_id: Optional[str] = None) -> StageOutcome:
        outcome = await self.run_prediction(student_id, user_id)
        if not outcome.results:
            logger.warning(f"L1: no results for student {student_id}")
        return outcome
