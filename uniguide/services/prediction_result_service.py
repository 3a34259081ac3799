"""
Prediction Result Service
Manages the lifecycle of a student's prediction result and merges stage outputs into it
"""

from typing import Any, Dict, List, Mapping, Optional
from dataclasses import replace
from datetime import datetime
import uuid

from ..database.models import (
    PredictionResult,
    PredictionStatus,
    restart_prediction,
    transition_prediction,
)
from ..database.unit_of_work import UnitOfWork
from ..exceptions import EntityNotFoundError, InvalidStateTransitionError
from ..logger import logger
from ..prediction.batch_invoker import BatchResult

STAGES = ("l1", "l2", "l3")


def resolve_status(stage_outcomes: Mapping[str, Optional[BatchResult]]) -> PredictionStatus:
    """
    Decide the terminal status of a prediction run

    Args:
        stage_outcomes: Batch result per stage that ran; None for a stage that raised

    Returns:
        PredictionStatus: COMPLETED when every stage returned results without
        failed chunks, FAILED when no stage returned anything, PARTIAL otherwise
    """
    if not stage_outcomes:
        return PredictionStatus.FAILED

    with_results = [o for o in stage_outcomes.values() if o is not None and o.results]
    if not with_results:
        return PredictionStatus.FAILED

    all_clean = all(
        outcome is not None and outcome.results and not outcome.has_failures
        for outcome in stage_outcomes.values()
    )
    return PredictionStatus.COMPLETED if all_clean else PredictionStatus.PARTIAL


class PredictionResultService:
    """
    Service for prediction result records

    One record exists per (student_id, user_id). A new run reopens it as
    PROCESSING; stage outputs are merged in and the run ends in COMPLETED,
    PARTIAL or FAILED.
    """

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    def find_by_student_id_and_user_id(self, student_id: str,
                                       user_id: Optional[str] = None) -> Optional[PredictionResult]:
        return self.uow.prediction_results.find_by_student_and_user(student_id, user_id)

    def get_completed(self, student_id: str, user_id: Optional[str] = None) -> PredictionResult:
        """
        Get the caller's completed prediction result

        Args:
            student_id: Student identifier
            user_id: Owning user, None for the guest record

        Returns:
            PredictionResult: The COMPLETED record

        Raises:
            EntityNotFoundError: If no COMPLETED record exists for exactly this user
        """
        result = self.find_by_student_id_and_user_id(student_id, user_id)
        if result is None or result.status != PredictionStatus.COMPLETED:
            raise EntityNotFoundError(
                f"No completed prediction result found for student {student_id}"
            )
        return result

    def start_processing(self, student_id: str, user_id: Optional[str] = None,
                         actor: Optional[str] = None) -> PredictionResult:
        """
        Create or reopen the record for a new prediction run

        Args:
            student_id: Student identifier
            user_id: Owning user, None for guests
            actor: Identity stored in created_by/updated_by

        Returns:
            PredictionResult: Record in PROCESSING status
        """
        actor = actor or user_id
        existing = self.find_by_student_id_and_user_id(student_id, user_id)
        if existing is None:
            now = datetime.utcnow()
            result = PredictionResult(
                id=str(uuid.uuid4()),
                student_id=student_id,
                user_id=user_id,
                status=PredictionStatus.PROCESSING,
                created_at=now,
                updated_at=now,
                created_by=actor,
                updated_by=actor
            )
            logger.info(f"Created prediction result {result.id} for student {student_id}")
        else:
            result = restart_prediction(existing, updated_by=actor)
            logger.info(f"Reopened prediction result {result.id} for student {student_id}")
        return self.uow.prediction_results.save(result)

    def record_stage_results(self, result: PredictionResult,
                             **stage_results: Optional[List[Dict[str, Any]]]) -> PredictionResult:
        """
        Merge stage outputs into a PROCESSING record

        Args:
            result: Record being processed
            **stage_results: l1/l2/l3 result lists; stages not given are kept

        Returns:
            PredictionResult: Saved record

        Raises:
            InvalidStateTransitionError: If the record is already terminal
        """
        unknown = set(stage_results) - set(STAGES)
        if unknown:
            raise ValueError(f"Unknown prediction stages: {sorted(unknown)}")
        if result.status != PredictionStatus.PROCESSING:
            raise InvalidStateTransitionError(
                f"Prediction result {result.id} is {result.status.value}; start a new run first"
            )
        patch = {f"{stage}_results": value for stage, value in stage_results.items()}
        updated = replace(result, updated_at=datetime.utcnow(), **patch)
        return self.uow.prediction_results.save(updated)

    def complete(self, result: PredictionResult, status: PredictionStatus) -> PredictionResult:
        """Move a PROCESSING record to its terminal status and save it"""
        updated = transition_prediction(result, status)
        logger.info(f"Prediction result {result.id} finished with status {status.value}")
        return self.uow.prediction_results.save(updated)

    def mark_failed(self, result: PredictionResult) -> PredictionResult:
        return self.complete(result, PredictionStatus.FAILED)

    resolve_status = staticmethod(resolve_status)
