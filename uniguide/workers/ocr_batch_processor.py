"""
OCR Batch Processor
Handles asynchronous score extraction for batches of transcript files
"""

from datetime import datetime
from typing import List, Optional, Sequence

from ..database.models import OcrResult
from ..database.unit_of_work import UnitOfWork
from ..events.dispatcher import EventDispatcher
from ..events.ocr_event_listener import L3_TRIGGER_COUNTS
from ..events.schemas import OcrCreatedEvent
from ..logger import logger
from ..services.ocr_result_service import OcrResultService
from ..services.score_extraction import ScoreExtractor


class OcrBatchProcessor:
    """
    Background processor for OCR batches

    Creates one PENDING row per new file, runs the score extractor, stores the
    outcome and emits OcrCreatedEvent once the student's completed OCR count
    reaches 3 or 6. Runs as a FastAPI background task.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        extractor: ScoreExtractor,
        dispatcher: EventDispatcher,
        ocr_service: Optional[OcrResultService] = None
    ):
        """
        Initialize processor

        Args:
            uow: Unit of Work instance
            extractor: OCR collaborator producing subject scores
            dispatcher: Event dispatcher used to publish OcrCreatedEvent
            ocr_service: OcrResultService instance (optional)
        """
        self.uow = uow
        self.extractor = extractor
        self.dispatcher = dispatcher
        self.ocr_service = ocr_service if ocr_service else OcrResultService(uow)

    def submit(self, student_id: str, processed_by: Optional[str],
               file_ids: Sequence[str]) -> List[OcrResult]:
        """
        Create the PENDING rows for a batch

        Files that do not exist or belong to another student are skipped.

        Returns:
            List[OcrResult]: Rows created for this batch
        """
        files = [f for f in self.uow.files.find_by_ids(list(file_ids)) if f.student_id == student_id]
        skipped = len(file_ids) - len(files)
        if skipped:
            logger.warning(f"Skipping {skipped} files not found for student {student_id}")
        return self.ocr_service.create_initial_ocr_results(student_id, processed_by, files)

    async def process_batch(self, student_id: str, processed_by: Optional[str],
                            initial_results: Sequence[OcrResult]) -> List[OcrResult]:
        """
        Extract scores for the rows of a batch and store the outcome

        Args:
            student_id: Student owning the files
            processed_by: Submitting user (None for guests)
            initial_results: Rows returned by submit()

        Returns:
            List[OcrResult]: Rows in their final status
        """
        if not initial_results:
            logger.info(f"No new OCR work for student {student_id}")
            return []

        start_time = datetime.utcnow()
        logger.info(f"Starting OCR for {len(initial_results)} files of student {student_id}")

        rows = self.ocr_service.mark_as_processing(initial_results)
        try:
            files = self.uow.files.find_by_ids([r.file_id for r in rows])
            extraction = await self.extractor.extract_batch(files)
            rows = self.ocr_service.update_results(rows, extraction, start_time)
        except Exception as e:
            logger.error(f"OCR batch for student {student_id} failed: {str(e)}")
            return self.ocr_service.mark_as_failed(rows, str(e), start_time)

        await self._emit_if_transcript_complete(student_id, processed_by)
        return rows

    async def run(self, student_id: str, processed_by: Optional[str],
                  file_ids: Sequence[str]) -> List[OcrResult]:
        """Submit and process a batch in one call"""
        initial = self.submit(student_id, processed_by, file_ids)
        return await self.process_batch(student_id, processed_by, initial)

    async def _emit_if_transcript_complete(self, student_id: str, processed_by: Optional[str]) -> None:
        completed = self.ocr_service.find_completed_for_student(student_id)
        if len(completed) not in L3_TRIGGER_COUNTS:
            logger.info(f"Student {student_id} has {len(completed)} completed OCR results; no event emitted")
            return

        event = OcrCreatedEvent(
            student_id=student_id,
            user_id=processed_by,
            ocr_result_ids=[r.id for r in completed]
        )
        await self.dispatcher.dispatch(OcrCreatedEvent.name, event)
        logger.info(f"Emitted {OcrCreatedEvent.name} for student {student_id} with {len(completed)} results")
