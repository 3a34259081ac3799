"""
Domain events
Pydantic payloads published on the event bus; field names accept camelCase from publishers
"""

from typing import ClassVar, List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class DomainEvent(BaseModel):
    """
    Base for student events

    Attributes:
        name: Key used by the dispatcher to route the event
        student_id: Student the event is about (UUID)
        user_id: Acting user, None for guests
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: ClassVar[str] = ""

    student_id: str
    user_id: Optional[str] = None

    @field_validator("student_id")
    @classmethod
    def check_student_id(cls, value: str) -> str:
        try:
            uuid.UUID(value)
        except ValueError:
            raise ValueError(f"{value!r} is not a valid UUID")
        return value


class OcrCreatedEvent(DomainEvent):
    """Emitted after a student's OCR batch reaches a completed count"""

    name: ClassVar[str] = "ocr.created"

    ocr_result_ids: List[str]


class TranscriptUpdatedEvent(DomainEvent):
    name: ClassVar[str] = "transcript.updated"

    transcript_id: str


class TranscriptCreatedEvent(DomainEvent):
    name: ClassVar[str] = "transcript.created"

    transcript_ids: List[str]


class StudentCreatedEvent(DomainEvent):
    """Emitted when a student profile is registered"""

    name: ClassVar[str] = "student.created"
