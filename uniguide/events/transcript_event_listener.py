"""
Transcript Event Listener
Starts an L3 prediction when transcripts are created or updated
"""

from typing import Any, Mapping, Optional, Union

from ..database.unit_of_work import UnitOfWork
from ..logger import logger
from ..services.ocr_result_service import OcrResultService
from ..services.prediction_processor import PredictionProcessor
from .ocr_event_listener import L3_TRIGGER_COUNTS, parse_event
from .schemas import TranscriptCreatedEvent, TranscriptUpdatedEvent


class TranscriptEventListener:
    """
    Listener for transcript events

    An update counts the student's completed OCR results; a creation counts
    the transcripts it carries. L3 runs when the count is 3 or 6.
    """

    def __init__(self, processor: PredictionProcessor, uow: UnitOfWork):
        self.processor = processor
        self.uow = uow

    async def handle_updated(self, payload: Union[TranscriptUpdatedEvent, Mapping[str, Any]]) -> None:
        event = parse_event(TranscriptUpdatedEvent, payload)
        if event is None:
            return
        try:
            count = OcrResultService(self.uow).count_completed_for_student(event.student_id)
        except Exception as e:
            logger.error(f"Could not count transcripts for student {event.student_id}: {str(e)}")
            return
        await self._trigger(event.student_id, event.user_id, count)

    async def handle_created(self, payload: Union[TranscriptCreatedEvent, Mapping[str, Any]]) -> None:
        event = parse_event(TranscriptCreatedEvent, payload)
        if event is None:
            return
        await self._trigger(event.student_id, event.user_id, len(event.transcript_ids))

    async def _trigger(self, student_id: str, user_id: Optional[str], count: int) -> None:
        if count not in L3_TRIGGER_COUNTS:
            logger.info(f"Skipping L3 prediction for student {student_id}: {count} transcripts (need 3 or 6)")
            return
        try:
            result = await self.processor.process_l3_prediction_in_transaction(self.uow, student_id, user_id)
            logger.info(f"L3 prediction {result.id} for student {student_id} finished with status {result.status.value}")
        except Exception as e:
            logger.error(f"L3 prediction for student {student_id} failed: {str(e)}")
