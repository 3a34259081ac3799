"""
Tests for prediction result lifecycle and status resolution
"""
import pytest

from conftest import USER_ID
from uniguide.database.models import PredictionStatus, restart_prediction, transition_prediction
from uniguide.exceptions import EntityNotFoundError, InvalidStateTransitionError
from uniguide.prediction.batch_invoker import BatchResult, CompletedChunk, FailedChunk
from uniguide.services.prediction_result_service import PredictionResultService, resolve_status


def batch(results=(), failed=False) -> BatchResult:
    result = BatchResult()
    if results:
        result.completed_chunks.append(CompletedChunk(index=0, items=list(results), results=list(results), attempts=1))
    if failed:
        result.failed_chunks.append(FailedChunk(index=1, items=["x"], error=RuntimeError("boom"), attempts=3))
    return result


@pytest.fixture
def service(uow):
    return PredictionResultService(uow)


@pytest.mark.parametrize("outcomes,expected", [
    ({}, PredictionStatus.FAILED),
    ({"l1": None, "l2": None}, PredictionStatus.FAILED),
    ({"l1": batch(), "l2": batch()}, PredictionStatus.FAILED),
    ({"l1": batch([1]), "l2": batch([2])}, PredictionStatus.COMPLETED),
    ({"l1": batch([1]), "l2": None}, PredictionStatus.PARTIAL),
    ({"l1": batch([1]), "l2": batch()}, PredictionStatus.PARTIAL),
    ({"l1": batch([1], failed=True), "l2": batch([2])}, PredictionStatus.PARTIAL),
    ({"l3": batch([1])}, PredictionStatus.COMPLETED),
])
def test_resolve_status(outcomes, expected):
    assert resolve_status(outcomes) == expected


def test_start_processing_creates_then_reopens(service, student):
    first = service.start_processing(student.id, USER_ID)
    completed = service.complete(first, PredictionStatus.COMPLETED)
    reopened = service.start_processing(student.id, USER_ID)

    assert first.status == PredictionStatus.PROCESSING
    assert first.created_by == USER_ID
    assert completed.status == PredictionStatus.COMPLETED
    assert reopened.id == first.id
    assert reopened.status == PredictionStatus.PROCESSING


def test_guest_and_user_records_are_separate(service, student):
    guest = service.start_processing(student.id, None)
    owned = service.start_processing(student.id, USER_ID)
    guest_again = service.start_processing(student.id, None)

    assert guest.id != owned.id
    assert guest_again.id == guest.id


def test_get_completed_requires_completed_status(service, student):
    record = service.start_processing(student.id, USER_ID)
    with pytest.raises(EntityNotFoundError):
        service.get_completed(student.id, USER_ID)

    service.complete(record, PredictionStatus.PARTIAL)
    with pytest.raises(EntityNotFoundError):
        service.get_completed(student.id, USER_ID)


def test_get_completed_matches_user_exactly(service, student):
    record = service.start_processing(student.id, USER_ID)
    record = service.record_stage_results(record, l2=[{"ma_xet_tuyen": "BKA01", "score": 25.0}])
    service.complete(record, PredictionStatus.COMPLETED)

    found = service.get_completed(student.id, USER_ID)
    assert found.l2_results == [{"ma_xet_tuyen": "BKA01", "score": 25.0}]
    with pytest.raises(EntityNotFoundError):
        service.get_completed(student.id, None)
    with pytest.raises(EntityNotFoundError):
        service.get_completed(student.id, "another-user")


def test_record_stage_results_keeps_other_stages(service, student):
    record = service.start_processing(student.id, USER_ID)
    record = service.record_stage_results(record, l1=[{"loai_uu_tien": "hsg", "ma_xet_tuyen": {"A": 1.0}}])
    record = service.record_stage_results(record, l3=[])

    assert record.l1_results == [{"loai_uu_tien": "hsg", "ma_xet_tuyen": {"A": 1.0}}]
    assert record.l3_results == []
    assert record.l2_results is None


def test_record_stage_results_rejects_terminal_records(service, student):
    record = service.mark_failed(service.start_processing(student.id, USER_ID))

    with pytest.raises(InvalidStateTransitionError):
        service.record_stage_results(record, l1=[])
    with pytest.raises(ValueError):
        service.record_stage_results(service.start_processing(student.id, USER_ID), l4=[])


def test_terminal_records_only_move_through_restart(service, student):
    record = service.complete(service.start_processing(student.id, USER_ID), PredictionStatus.COMPLETED)

    with pytest.raises(InvalidStateTransitionError):
        transition_prediction(record, PredictionStatus.FAILED)
    with pytest.raises(InvalidStateTransitionError):
        service.complete(restart_prediction(record), PredictionStatus.PROCESSING)
    assert restart_prediction(record, updated_by="admin").updated_by == "admin"
