"""
OCR Event Listener
Starts an L3 prediction when a student's OCR batch reaches a full transcript
"""

from typing import Any, Mapping, Optional, Type, TypeVar, Union

from pydantic import ValidationError

from ..database.unit_of_work import UnitOfWork
from ..logger import logger
from ..services.prediction_processor import PredictionProcessor
from .schemas import DomainEvent, OcrCreatedEvent

# three full-year transcripts or six semester transcripts
L3_TRIGGER_COUNTS = frozenset({3, 6})

EventT = TypeVar("EventT", bound=DomainEvent)


def parse_event(event_type: Type[EventT],
                payload: Union[EventT, Mapping[str, Any]]) -> Optional[EventT]:
    """Validate a payload into event_type; returns None (and logs) when malformed"""
    if isinstance(payload, event_type):
        return payload
    try:
        return event_type.model_validate(payload)
    except ValidationError as e:
        logger.error(f"Dropping malformed {event_type.name} event: {str(e)}")
        return None


class OcrEventListener:
    """
    Listener for OcrCreatedEvent

    Never raises: malformed events, counts other than 3 or 6 and processing
    failures are logged and dropped.
    """

    def __init__(self, processor: PredictionProcessor, uow: UnitOfWork):
        self.processor = processor
        self.uow = uow

    async def handle(self, payload: Union[OcrCreatedEvent, Mapping[str, Any]]) -> None:
        event = parse_event(OcrCreatedEvent, payload)
        if event is None:
            return

        count = len(event.ocr_result_ids)
        if count not in L3_TRIGGER_COUNTS:
            logger.info(
                f"Skipping L3 prediction for student {event.student_id}: "
                f"{count} OCR results (need 3 or 6)"
            )
            return

        try:
            result = await self.processor.process_l3_prediction_in_transaction(
                self.uow, event.student_id, event.user_id
            )
            logger.info(
                f"L3 prediction {result.id} for student {event.student_id} "
                f"finished with status {result.status.value}"
            )
        except Exception as e:
            logger.error(f"L3 prediction for student {event.student_id} failed: {str(e)}")
