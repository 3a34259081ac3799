"""
Student Event Listener
Runs L1 and L2 predictions for newly registered students
"""

from typing import Any, Mapping, Union

from ..logger import logger
from ..services.prediction_processor import PredictionProcessor
from .ocr_event_listener import parse_event
from .schemas import StudentCreatedEvent


class StudentEventListener:
    """Listener for StudentCreatedEvent; never raises"""

    def __init__(self, processor: PredictionProcessor):
        self.processor = processor

    async def handle(self, payload: Union[StudentCreatedEvent, Mapping[str, Any]]) -> None:
        event = parse_event(StudentCreatedEvent, payload)
        if event is None:
            return
        try:
            result = await self.processor.process_student_prediction(event.student_id, event.user_id)
            logger.info(
                f"L1/L2 prediction {result.id} for student {event.student_id} "
                f"finished with status {result.status.value}"
            )
        except Exception as e:
            logger.error(f"L1/L2 prediction for student {event.student_id} failed: {str(e)}")
