"""
L2 Prediction Service
Program matching from exam scenarios, language certificates and conduct/performance ranks
"""

from typing import Dict, List, Optional, Sequence

from ..database.models import Student
from ..exceptions import IllegalArgumentError
from ..prediction.batch_invoker import BatchResult
from ..prediction.schemas import L2PredictResult, UserInputL2, validate_user_input_l2
from .prediction_stage_service import PredictionStageService, StageOutcome, uni_type_flag


def deduplicate_by_highest_score(results: Sequence[L2PredictResult]) -> List[L2PredictResult]:
    """Keep one result per admission code, the one with the highest score"""
    best: Dict[str, L2PredictResult] = {}
    for result in results:
        current = best.get(result.ma_xet_tuyen)
        if current is None or result.score > current.score:
            best[result.ma_xet_tuyen] = result
    return list(best.values())


class PredictionL2Service(PredictionStageService[UserInputL2, L2PredictResult]):
    """Stage service for L2 predictions"""

    stage = "l2"
    path = "/predict/l2/batch"
    result_model = L2PredictResult

    def validate(self, user_input: UserInputL2):
        return validate_user_input_l2(user_input)

    def build_user_inputs(self, student: Student, **context) -> List[UserInputL2]:
        """
        Build one input per exam scenario x certificate x major group

        Raises:
            IllegalArgumentError: If conduct or performance is missing for a grade
        """
        ranks = {}
        for grade in (10, 11, 12):
            record = student.grade_record(grade)
            if record is None:
                raise IllegalArgumentError(
                    f"Conduct and academic performance for grade {grade} are missing."
                )
            ranks[f"hk{grade}"] = record.conduct
            ranks[f"hl{grade}"] = record.academic_performance

        certificates = [(c.name, c.level) for c in student.language_certifications] or [("0", "0")]

        return [
            UserInputL2(
                cong_lap=uni_type_flag(student.uni_type),
                hoc_phi=student.max_budget,
                tinh_tp=student.province,
                nhom_nganh=major_group,
                to_hop_mon=scenario.subject_group,
                diem_chuan=scenario.score,
                ten_ccta=name,
                diem_ccta=level,
                **ranks
            )
            for scenario in student.exam_scenarios
            for name, level in certificates
            for major_group in student.major_groups
        ]

    def combine_results(self, results: Sequence[L2PredictResult]) -> List[L2PredictResult]:
        return deduplicate_by_highest_score(results)

    async def predict_majors_l2_batch(self, user_inputs: Sequence[UserInputL2]) -> BatchResult:
        return await self.predict_batch(user_inputs)

    def get_l2_predict_results(self, student_id: str, user_id: Optional[str] = None) -> List[L2PredictResult]:
        return self.get_persisted_results(student_id, user_id)

    async def run_l2_prediction(self, student_id: str, user_id: Optional[str] = None) -> StageOutcome:
        return await self.run_prediction(student_id, user_id)
