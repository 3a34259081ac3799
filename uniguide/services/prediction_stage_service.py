"""
Prediction stage base
Shared batch-call plumbing for the L1, L2 and L3 stage services
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..config import ChunkPolicy, PredictionServiceConfig
from ..database.models import Student, UniType
from ..database.unit_of_work import UnitOfWork
from ..exceptions import (
    EntityNotFoundError,
    IllegalArgumentError,
    InputValidationError,
    PredictionRequestError,
    PredictionResponseError,
    PredictionServiceError,
)
from ..logger import logger
from ..prediction.batch_invoker import BatchConfig, BatchResult, FailedChunk, RetryingBatchInvoker
from ..prediction.client import PredictionServiceClient
from .prediction_result_service import PredictionResultService

InputT = TypeVar("InputT")
ResultT = TypeVar("ResultT", bound=BaseModel)


@dataclass
class StageOutcome(Generic[ResultT]):
    """
    Combined results of one stage run and the batch that produced them

    Attributes:
        results: Combined (deduplicated) stage results
        batch: Raw batch result with completed and failed chunks
    """
    results: List[ResultT] = field(default_factory=list)
    batch: BatchResult = field(default_factory=BatchResult)

    @property
    def has_failures(self) -> bool:
        return self.batch.has_failures

    def results_as_dicts(self) -> List[Dict[str, Any]]:
        return [result.model_dump() for result in self.results]


def uni_type_flag(uni_type: UniType) -> int:
    return 1 if uni_type == UniType.PUBLIC else 0


class PredictionStageService(Generic[InputT, ResultT]):
    """
    Base class for a prediction stage

    Subclasses set the endpoint path, result model, chunk policy selector and
    validation function, then build inputs and combine results.
    """

    stage = ""
    path = ""
    result_model: Type[ResultT]
    wraps_items = True

    def __init__(
        self,
        uow: UnitOfWork,
        client: PredictionServiceClient,
        config: PredictionServiceConfig,
        invoker_factory: Optional[Callable[[BatchConfig], RetryingBatchInvoker]] = None
    ):
        """
        Initialize service

        Args:
            uow: Unit of Work instance
            client: Prediction service client
            config: Prediction service settings
            invoker_factory: Builds the batch invoker for a policy (tests inject fast sleeps)
        """
        self.uow = uow
        self.client = client
        self.config = config
        self._invoker_factory = invoker_factory or RetryingBatchInvoker

    def chunk_policy(self) -> ChunkPolicy:
        return getattr(self.config, self.stage)

    def validate(self, user_input: InputT) -> List[Dict[str, str]]:
        raise NotImplementedError

    def build_user_inputs(self, student: Student, **context) -> List[InputT]:
        raise NotImplementedError

    def combine_results(self, results: Sequence[ResultT]) -> List[ResultT]:
        raise NotImplementedError

    def _parse_response(self, body: Any, sent: int) -> List[ResultT]:
        """Turn a response body into typed results; nested lists are flattened"""
        if not isinstance(body, list):
            raise PredictionResponseError(
                f"{self.stage.upper()} response must be a list, got {type(body).__name__}"
            )
        flat: List[Any] = []
        for entry in body:
            if isinstance(entry, list):
                flat.extend(entry)
            else:
                flat.append(entry)
        try:
            return [self.result_model.model_validate(item) for item in flat]
        except ValidationError as e:
            raise PredictionResponseError(
                f"{self.stage.upper()} response for {sent} inputs is malformed: {str(e)}"
            ) from e

    async def _call_chunk(self, chunk: List[InputT]) -> List[ResultT]:
        """Send one chunk; local failures are wrapped as non-retryable service errors"""
        try:
            payloads = [item.to_payload() for item in chunk]
            body = {"items": payloads} if self.wraps_items else payloads
            response = await self.client.request("POST", self.path, json=body)
            return self._parse_response(response, len(chunk))
        except PredictionServiceError:
            raise
        except Exception as e:
            raise PredictionRequestError(
                f"{self.stage.upper()} request for {len(chunk)} inputs failed: {str(e)}"
            ) from e

    async def predict_batch(self, user_inputs: Sequence[InputT]) -> BatchResult:
        """
        Validate inputs and send the valid ones through the batch invoker

        Invalid inputs are never sent; each is reported as a failed chunk
        without an index carrying an InputValidationError.

        Args:
            user_inputs: Stage inputs

        Returns:
            BatchResult: Typed stage results plus failed chunks
        """
        valid: List[InputT] = []
        rejected: List[FailedChunk] = []
        for user_input in user_inputs:
            issues = self.validate(user_input)
            if issues:
                rejected.append(FailedChunk(
                    index=None,
                    items=[user_input],
                    error=InputValidationError(issues),
                    attempts=0
                ))
            else:
                valid.append(user_input)

        if rejected:
            logger.warning(f"{self.stage.upper()}: {len(rejected)} inputs failed validation and were not sent")

        invoker = self._invoker_factory(BatchConfig.for_stage(self.config, self.chunk_policy()))
        batch = await invoker.invoke(valid, self._call_chunk, label=f"{self.stage.upper()} prediction")
        batch.failed_chunks.extend(rejected)
        return batch

    def load_student(self, student_id: str, uow: Optional[UnitOfWork] = None) -> Student:
        student = (uow or self.uow).students.find_by_id(student_id)
        if student is None:
            raise EntityNotFoundError(f"Student {student_id} not found")
        return student

    async def run_prediction(self, student_id: str, user_id: Optional[str] = None,
                             uow: Optional[UnitOfWork] = None) -> StageOutcome:
        """
        Build inputs for a student, predict and combine the results

        Args:
            student_id: Student identifier
            user_id: Caller identity (logged)
            uow: Unit of work to read through (defaults to the service's own)

        Returns:
            StageOutcome: Combined results and the raw batch

        Raises:
            EntityNotFoundError: If the student does not exist
            IllegalArgumentError: If no inputs can be built for the student
        """
        student = self.load_student(student_id, uow)
        user_inputs = self.build_user_inputs(student, uow=uow or self.uow)
        if not user_inputs:
            raise IllegalArgumentError(
                f"No {self.stage.upper()} user inputs could be generated for student {student_id}"
            )

        logger.info(
            f"{self.stage.upper()}: predicting {len(user_inputs)} inputs for student {student_id} "
            f"(user {user_id or 'guest'})"
        )
        batch = await self.predict_batch(user_inputs)
        combined = self.combine_results(batch.results)
        logger.info(
            f"{self.stage.upper()}: student {student_id} got {len(combined)} combined results, "
            f"{len(batch.failed_chunks)} failed chunks"
        )
        return StageOutcome(results=combined, batch=batch)

    def get_persisted_results(self, student_id: str, user_id: Optional[str] = None) -> List[ResultT]:
        """
        Read this stage's results from the caller's COMPLETED prediction record

        Raises:
            EntityNotFoundError: If no COMPLETED record exists for exactly (student_id, user_id)
        """
        record = PredictionResultService(self.uow).get_completed(student_id, user_id)
        stored = getattr(record, f"{self.stage}_results") or []
        return [self.result_model.model_validate(item) for item in stored]
