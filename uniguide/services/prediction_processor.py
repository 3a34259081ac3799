"""
Prediction Processor
Runs prediction stages for a student and persists the outcome on the prediction result record
"""

from contextlib import closing
from typing import Callable, Dict, Optional

from ..database.models import PredictionResult, PredictionStatus
from ..database.unit_of_work import UnitOfWork
from ..exceptions import EntityNotFoundError, UniGuideError
from ..logger import logger
from .prediction_l1_service import PredictionL1Service
from .prediction_l2_service import PredictionL2Service
from .prediction_l3_service import PredictionL3Service
from .prediction_result_service import PredictionResultService, resolve_status
from .prediction_stage_service import StageOutcome


def merge_l3_status(previous: Optional[PredictionResult],
                    outcome: Optional[StageOutcome]) -> PredictionStatus:
    """
    Status of a record after an L3 run on top of an earlier L1/L2 run

    Args:
        previous: Record as stored when the L3 results are merged (None if there was none)
        outcome: L3 outcome, None if the stage raised

    Returns:
        PredictionStatus: Terminal status for the record
    """
    l3_status = resolve_status({"l3": outcome})
    if previous is None or not (previous.l1_results or previous.l2_results):
        return l3_status

    prior = previous.status
    if prior == PredictionStatus.PROCESSING:
        prior = PredictionStatus.PARTIAL
    if l3_status == prior:
        return l3_status
    return PredictionStatus.PARTIAL


class PredictionProcessor:
    """
    Orchestrates prediction runs for a student

    L1 and L2 run together for profile events and HTTP triggers. L3 runs on
    transcript events. The predictor calls never hold a transaction open:
    each run re-reads the record and merges its own stage columns in a short
    transaction on a dedicated unit-of-work session, so concurrent runs for
    the same record keep each other's results.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        l1_service: PredictionL1Service,
        l2_service: PredictionL2Service,
        l3_service: PredictionL3Service
    ):
        self.uow = uow
        self.l1_service = l1_service
        self.l2_service = l2_service
        self.l3_service = l3_service

    async def process_student_prediction(self, student_id: str,
                                         user_id: Optional[str] = None) -> PredictionResult:
        """
        Run L1 and L2 for a student and store the combined results

        A stage that raises is recorded as empty; the record ends PARTIAL when
        the other stage produced results and FAILED when neither did.

        Args:
            student_id: Student identifier
            user_id: Owning user, None for guests

        Returns:
            PredictionResult: Record in its terminal status

        Raises:
            EntityNotFoundError: If the student does not exist
        """
        if self.uow.students.find_by_id(student_id) is None:
            raise EntityNotFoundError(f"Student {student_id} not found")

        record = PredictionResultService(self.uow).start_processing(student_id, user_id)
        logger.info(f"Starting L1/L2 prediction {record.id} for student {student_id}")

        try:
            outcomes: Dict[str, Optional[StageOutcome]] = {}
            runners = (
                ("l1", self.l1_service.run_l1_prediction),
                ("l2", self.l2_service.run_l2_prediction),
            )
            for stage, runner in runners:
                try:
                    outcomes[stage] = await runner(student_id, user_id)
                except UniGuideError as e:
                    logger.error(f"{stage.upper()} prediction failed for student {student_id}: {str(e)}")
                    outcomes[stage] = None

            return self._store_run(
                self.uow, student_id, user_id,
                lambda previous: resolve_status(outcomes),
                **{
                    stage: outcome.results_as_dicts() if outcome else None
                    for stage, outcome in outcomes.items()
                }
            )
        except Exception as e:
            logger.error(f"Prediction {record.id} for student {student_id} failed: {str(e)}")
            self._store_run(self.uow, student_id, user_id, lambda previous: PredictionStatus.FAILED)
            raise

    async def process_l3_prediction_in_transaction(
        self,
        uow: UnitOfWork,
        student_id: str,
        user_id: Optional[str] = None
    ) -> PredictionResult:
        """
        Run L3 for a student and merge it into the prediction record atomically

        The predictor runs first. The read of the current record, the merge of
        l3_results and the status change then commit as one transaction.

        Args:
            uow: Unit of work the run reads through; the merge runs on a
                dedicated session of it
            student_id: Student identifier
            user_id: Owning user, None for guests

        Returns:
            PredictionResult: Record in its terminal status
        """
        logger.info(f"Starting L3 prediction for student {student_id}")

        outcome: Optional[StageOutcome]
        try:
            outcome = await self.l3_service.run_l3_prediction(student_id, user_id, uow=uow)
        except UniGuideError as e:
            logger.error(f"L3 prediction failed for student {student_id}: {str(e)}")
            outcome = None

        return self._store_run(
            uow, student_id, user_id,
            lambda previous: merge_l3_status(previous, outcome),
            l3=outcome.results_as_dicts() if outcome else None
        )

    @staticmethod
    def _store_run(
        uow: UnitOfWork,
        student_id: str,
        user_id: Optional[str],
        decide_status: Callable[[Optional[PredictionResult]], PredictionStatus],
        **stage_results
    ) -> PredictionResult:
        """Re-read the record, merge the run's stage columns and finish it in one transaction"""
        with closing(uow.session()) as session, session.transaction():
            results_service = PredictionResultService(session)
            previous = results_service.find_by_student_id_and_user_id(student_id, user_id)
            if previous is not None and previous.status == PredictionStatus.PROCESSING:
                record = previous
            else:
                record = results_service.start_processing(student_id, user_id)
            record = results_service.record_stage_results(record, **stage_results)
            return results_service.complete(record, decide_status(previous))
