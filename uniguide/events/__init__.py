"""
Event bus integration
Domain events, the dispatcher and the listeners that trigger predictions
"""

from .dispatcher import EventDispatcher
from .ocr_event_listener import OcrEventListener
from .schemas import OcrCreatedEvent, StudentCreatedEvent, TranscriptCreatedEvent, TranscriptUpdatedEvent
from .student_event_listener import StudentEventListener
from .transcript_event_listener import TranscriptEventListener

__all__ = [
    'EventDispatcher',
    'OcrCreatedEvent',
    'OcrEventListener',
    'StudentCreatedEvent',
    'StudentEventListener',
    'TranscriptCreatedEvent',
    'TranscriptEventListener',
    'TranscriptUpdatedEvent',
    'register_listeners',
]


def register_listeners(dispatcher: EventDispatcher, ocr_listener: OcrEventListener,
                       transcript_listener: TranscriptEventListener,
                       student_listener: StudentEventListener) -> EventDispatcher:
    """Wire every listener into the dispatcher"""
    dispatcher.register(OcrCreatedEvent, ocr_listener.handle)
    dispatcher.register(TranscriptUpdatedEvent, transcript_listener.handle_updated)
    dispatcher.register(TranscriptCreatedEvent, transcript_listener.handle_created)
    dispatcher.register(StudentCreatedEvent, student_listener.handle)
    return dispatcher
