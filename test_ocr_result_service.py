"""
Tests for OCR result lifecycle and batch reconciliation
"""
from datetime import datetime, timedelta

import pytest

from conftest import USER_ID, add_file
from uniguide.database.models import OcrStatus, SubjectScore, transition_ocr
from uniguide.exceptions import EntityNotFoundError, InvalidStateTransitionError
from uniguide.services.ocr_result_service import MISSING_RESULT_MESSAGE, OcrResultService
from uniguide.services.score_extraction import BatchScoreExtractionResult, FileScoreExtractionResult


@pytest.fixture
def service(uow):
    return OcrResultService(uow)


@pytest.fixture
def files(uow, student):
    return [add_file(uow, student.id, f"transcript grade {grade}.pdf") for grade in (10, 11, 12)]


def test_create_initial_results_are_pending(service, student, files):
    created = service.create_initial_ocr_results(student.id, USER_ID, files)

    assert [r.file_id for r in created] == [f.id for f in files]
    assert all(r.status == OcrStatus.PENDING for r in created)
    assert all(r.processed_by == USER_ID for r in created)


def test_create_skips_files_with_existing_results(service, student, files):
    first = service.create_initial_ocr_results(student.id, USER_ID, files[:2])
    second = service.create_initial_ocr_results(student.id, USER_ID, files)
    third = service.create_initial_ocr_results(student.id, USER_ID, files)

    assert len(first) == 2
    assert [r.file_id for r in second] == [files[2].id]
    assert third == []


def test_update_results_fails_rows_without_extraction(service, uow, student, files):
    """Rows the extractor did not report on end FAILED, never PROCESSING"""
    initial = service.mark_as_processing(service.create_initial_ocr_results(student.id, USER_ID, files))
    batch = BatchScoreExtractionResult(
        results=[
            FileScoreExtractionResult(
                file_id=files[0].id,
                file_name=files[0].file_name,
                success=True,
                scores=[SubjectScore("Toán", 8.5)],
                document_annotation="Toán 8.5",
            ),
        ],
        ocr_model="mistral-ocr-latest",
    )

    updated = service.update_results(initial, batch, datetime.utcnow() - timedelta(seconds=2))

    assert [r.status for r in updated] == [OcrStatus.COMPLETED, OcrStatus.FAILED, OcrStatus.FAILED]
    assert updated[0].scores == [SubjectScore("Toán", 8.5)]
    for row in updated[1:]:
        stored = uow.ocr_results.find_by_id(row.id)
        assert stored.status == OcrStatus.FAILED
        assert stored.error_message == MISSING_RESULT_MESSAGE
    metadata = uow.ocr_results.find_by_id(updated[0].id).metadata
    assert metadata.ocr_model == "mistral-ocr-latest"
    assert metadata.successful_files == 1
    assert metadata.processing_time_ms >= 2000


def test_update_results_records_extraction_failure(service, student, files):
    initial = service.create_initial_ocr_results(student.id, USER_ID, files[:1])
    batch = BatchScoreExtractionResult(results=[
        FileScoreExtractionResult(file_id=files[0].id, file_name=files[0].file_name,
                                  success=False, error="unreadable page"),
    ])

    updated = service.update_results(initial, batch, datetime.utcnow())

    assert updated[0].status == OcrStatus.FAILED
    assert updated[0].error_message == "unreadable page"


def test_update_results_rejects_out_of_range_scores(service, uow, student, files):
    initial = service.create_initial_ocr_results(student.id, USER_ID, files[:2])
    batch = BatchScoreExtractionResult(results=[
        FileScoreExtractionResult(file_id=files[0].id, file_name=files[0].file_name, success=True,
                                  scores=[SubjectScore("Toán", 85.0), SubjectScore("Ngữ văn", -3.0)]),
        FileScoreExtractionResult(file_id=files[1].id, file_name=files[1].file_name, success=True,
                                  scores=[SubjectScore("Toán", 8.0), SubjectScore("Ngữ văn", 10.5)]),
    ])

    updated = service.update_results(initial, batch, datetime.utcnow())

    failed, partial = (uow.ocr_results.find_by_id(r.id) for r in updated)
    assert failed.status == OcrStatus.FAILED
    assert failed.scores == []
    assert failed.error_message == "Scores outside 0-10: Toán=85.0, Ngữ văn=-3.0"
    assert partial.status == OcrStatus.PARTIAL
    assert partial.scores == [SubjectScore("Toán", 8.0)]
    assert "Ngữ văn=10.5" in partial.error_message
    assert service.count_completed_for_student(student.id) == 0


def test_mark_as_failed_is_idempotent(service, uow, student, files):
    initial = service.create_initial_ocr_results(student.id, USER_ID, files)
    start = datetime.utcnow()

    failed = service.mark_as_failed(initial, "extractor crashed", start)
    again = service.mark_as_failed(failed, "extractor crashed again", start)

    assert all(r.status == OcrStatus.FAILED for r in again)
    stored = uow.ocr_results.find_by_id(again[0].id)
    assert stored.error_message == "extractor crashed again"
    assert stored.metadata.failed_files == 3


def test_find_by_id_checks_owner(service, student, files):
    created = service.create_initial_ocr_results(student.id, USER_ID, files[:1])

    assert service.find_by_id(created[0].id, USER_ID).id == created[0].id
    with pytest.raises(EntityNotFoundError):
        service.find_by_id(created[0].id, "someone-else")
    with pytest.raises(EntityNotFoundError):
        service.find_by_id(created[0].id)
    with pytest.raises(EntityNotFoundError):
        service.find_by_id("missing", USER_ID)


def test_completed_rows_cannot_go_back(service, student, files):
    created = service.create_initial_ocr_results(student.id, USER_ID, files[:1])
    completed = transition_ocr(created[0], OcrStatus.COMPLETED)

    with pytest.raises(InvalidStateTransitionError):
        transition_ocr(completed, OcrStatus.PROCESSING)
    with pytest.raises(InvalidStateTransitionError):
        transition_ocr(completed, OcrStatus.FAILED)


def test_completed_count(service, uow, student, files):
    initial = service.create_initial_ocr_results(student.id, USER_ID, files)
    batch = BatchScoreExtractionResult(results=[
        FileScoreExtractionResult(file_id=f.id, file_name=f.file_name, success=True,
                                  scores=[SubjectScore("Toán", 9.0)])
        for f in files[:2]
    ])
    service.update_results(initial, batch, datetime.utcnow())

    assert service.count_completed_for_student(student.id) == 2
    assert len(service.find_completed_for_student(student.id)) == 2
