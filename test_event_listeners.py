"""
Tests for domain events, the dispatcher and the prediction listeners
"""
import asyncio
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from uniguide.events import (
    EventDispatcher,
    OcrCreatedEvent,
    OcrEventListener,
    StudentCreatedEvent,
    StudentEventListener,
    TranscriptCreatedEvent,
    TranscriptEventListener,
    TranscriptUpdatedEvent,
    register_listeners,
)
from uniguide.exceptions import PredictionApiError

STUDENT_ID = str(uuid.uuid4())


def make_processor():
    processor = MagicMock()
    processor.process_l3_prediction_in_transaction = AsyncMock()
    processor.process_student_prediction = AsyncMock()
    return processor


def ocr_ids(count):
    return [str(uuid.uuid4()) for _ in range(count)]


def test_event_accepts_camel_case_payload():
    event = OcrCreatedEvent.model_validate({
        "studentId": STUDENT_ID,
        "userId": "user-1",
        "ocrResultIds": ["a", "b"],
    })

    assert event.student_id == STUDENT_ID
    assert event.user_id == "user-1"
    assert event.ocr_result_ids == ["a", "b"]


def test_event_rejects_non_uuid_student():
    with pytest.raises(ValidationError):
        StudentCreatedEvent(student_id="not-a-uuid")


def test_six_ocr_results_trigger_l3_once_with_unit_of_work():
    processor = make_processor()
    uow = MagicMock()
    listener = OcrEventListener(processor, uow)

    asyncio.run(listener.handle({"studentId": STUDENT_ID, "userId": "user-1", "ocrResultIds": ocr_ids(6)}))

    processor.process_l3_prediction_in_transaction.assert_awaited_once_with(uow, STUDENT_ID, "user-1")


@pytest.mark.parametrize("count,triggered", [(0, False), (1, False), (3, True), (4, False), (6, True), (9, False)])
def test_ocr_listener_trigger_counts(count, triggered):
    processor = make_processor()
    listener = OcrEventListener(processor, MagicMock())

    asyncio.run(listener.handle(OcrCreatedEvent(student_id=STUDENT_ID, ocr_result_ids=ocr_ids(count))))

    assert processor.process_l3_prediction_in_transaction.await_count == (1 if triggered else 0)


def test_ocr_listener_drops_malformed_payload():
    processor = make_processor()
    listener = OcrEventListener(processor, MagicMock())

    asyncio.run(listener.handle({"studentId": "nope", "ocrResultIds": ocr_ids(3)}))
    asyncio.run(listener.handle({"studentId": STUDENT_ID}))

    processor.process_l3_prediction_in_transaction.assert_not_awaited()


def test_ocr_listener_never_raises():
    processor = make_processor()
    processor.process_l3_prediction_in_transaction.side_effect = PredictionApiError(500, "down")
    listener = OcrEventListener(processor, MagicMock())

    asyncio.run(listener.handle(OcrCreatedEvent(student_id=STUDENT_ID, ocr_result_ids=ocr_ids(3))))

    processor.process_l3_prediction_in_transaction.assert_awaited_once()


@pytest.mark.parametrize("completed,triggered", [(2, False), (3, True), (6, True)])
def test_transcript_updated_counts_completed_ocr(completed, triggered):
    processor = make_processor()
    uow = MagicMock()
    uow.ocr_results.count_by_student_and_status.return_value = completed
    listener = TranscriptEventListener(processor, uow)

    asyncio.run(listener.handle_updated({"studentId": STUDENT_ID, "transcriptId": "t-1"}))

    assert processor.process_l3_prediction_in_transaction.await_count == (1 if triggered else 0)


def test_transcript_created_counts_transcripts():
    processor = make_processor()
    uow = MagicMock()
    listener = TranscriptEventListener(processor, uow)

    asyncio.run(listener.handle_created(TranscriptCreatedEvent(student_id=STUDENT_ID, transcript_ids=["a", "b"])))
    processor.process_l3_prediction_in_transaction.assert_not_awaited()

    asyncio.run(listener.handle_created(TranscriptCreatedEvent(student_id=STUDENT_ID, transcript_ids=["a", "b", "c"])))
    processor.process_l3_prediction_in_transaction.assert_awaited_once_with(uow, STUDENT_ID, None)


def test_student_listener_runs_l1_l2():
    processor = make_processor()
    listener = StudentEventListener(processor)

    asyncio.run(listener.handle({"studentId": STUDENT_ID, "userId": "user-1"}))

    processor.process_student_prediction.assert_awaited_once_with(STUDENT_ID, "user-1")


def test_student_listener_never_raises():
    processor = make_processor()
    processor.process_student_prediction.side_effect = RuntimeError("database is locked")

    asyncio.run(StudentEventListener(processor).handle(StudentCreatedEvent(student_id=STUDENT_ID)))


def test_dispatcher_routes_by_event_name():
    processor = make_processor()
    uow = MagicMock()
    uow.ocr_results.count_by_student_and_status.return_value = 6
    dispatcher = register_listeners(
        EventDispatcher(),
        OcrEventListener(processor, uow),
        TranscriptEventListener(processor, uow),
        StudentEventListener(processor),
    )

    delivered = asyncio.run(dispatcher.dispatch(
        StudentCreatedEvent.name, {"studentId": STUDENT_ID}
    ))
    asyncio.run(dispatcher.dispatch(
        TranscriptUpdatedEvent.name, TranscriptUpdatedEvent(student_id=STUDENT_ID, transcript_id="t-1")
    ))

    assert delivered == 1
    processor.process_student_prediction.assert_awaited_once_with(STUDENT_ID, None)
    processor.process_l3_prediction_in_transaction.assert_awaited_once_with(uow, STUDENT_ID, None)


def test_dispatcher_drops_unknown_and_malformed_events():
    dispatcher = EventDispatcher()
    handler = AsyncMock()
    dispatcher.register(OcrCreatedEvent, handler)

    assert asyncio.run(dispatcher.dispatch("unknown.event", {})) == 0
    assert asyncio.run(dispatcher.dispatch(OcrCreatedEvent.name, {"studentId": "bad"})) == 0
    handler.assert_not_awaited()


def test_dispatcher_isolates_failing_handlers():
    dispatcher = EventDispatcher()
    failing = AsyncMock(side_effect=RuntimeError("boom"))
    working = AsyncMock()
    dispatcher.register(StudentCreatedEvent, failing)
    dispatcher.register(StudentCreatedEvent, working)

    delivered = asyncio.run(dispatcher.dispatch(StudentCreatedEvent.name, {"studentId": STUDENT_ID}))

    assert delivered == 1
    working.assert_awaited_once()
    assert len(dispatcher.handlers_for(StudentCreatedEvent.name)) == 2
