"""
OCR Result Service
Manages the per-file OCR result lifecycle and reconciles batch extraction output
"""

from typing import List, Optional, Sequence, Tuple
from datetime import datetime
import uuid

from ..database.models import (
    FileRecord,
    OcrMetadata,
    OcrResult,
    OcrStatus,
    SubjectScore,
    transition_ocr,
)
from ..database.unit_of_work import UnitOfWork
from ..exceptions import EntityNotFoundError
from ..logger import logger
from .score_extraction import BatchScoreExtractionResult, FileScoreExtractionResult

MISSING_RESULT_MESSAGE = "Processing result not found for this file."
MIN_SCORE = 0.0
MAX_SCORE = 10.0


def _elapsed_ms(start: datetime, now: datetime) -> int:
    return max(0, int((now - start).total_seconds() * 1000))


def _split_scores(scores: Sequence[SubjectScore]) -> Tuple[List[SubjectScore], List[SubjectScore]]:
    valid, invalid = [], []
    for score in scores:
        in_range = score.score is not None and MIN_SCORE <= score.score <= MAX_SCORE
        (valid if in_range else invalid).append(score)
    return valid, invalid


def _out_of_range_message(invalid: Sequence[SubjectScore]) -> str:
    listed = ", ".join(f"{s.subject_name}={s.score}" for s in invalid)
    return f"Scores outside {MIN_SCORE:g}-{MAX_SCORE:g}: {listed}"


class OcrResultService:
    """
    Service for managing OCR result records

    Rows move PENDING -> PROCESSING -> COMPLETED | FAILED. There is exactly one
    row per file; batch submissions reuse existing rows.
    """

    def __init__(self, uow: UnitOfWork):
        """
        Initialize service

        Args:
            uow: Unit of Work instance
        """
        self.uow = uow

    def create_initial_ocr_results(
        self,
        student_id: str,
        processed_by: Optional[str],
        files: Sequence[FileRecord]
    ) -> List[OcrResult]:
        """
        Create PENDING OCR rows for files that do not have one yet

        Args:
            student_id: Student owning the files
            processed_by: Submitting user (None for guests)
            files: Files included in the batch

        Returns:
            List[OcrResult]: Newly created rows, in the order of files
        """
        if not files:
            return []

        with self.uow.transaction():
            existing = self.uow.ocr_results.find_by_file_ids(sorted(f.id for f in files))
            existing_file_ids = {result.file_id for result in existing}
            to_create = [f for f in files if f.id not in existing_file_ids]

            if not to_create:
                logger.warning(
                    f"All {len(files)} files already have OCR results for student {student_id}. "
                    f"No new records created."
                )
                return []

            now = datetime.utcnow()
            created = []
            for file in to_create:
                result = OcrResult(
                    id=str(uuid.uuid4()),
                    file_id=file.id,
                    student_id=student_id,
                    processed_by=processed_by,
                    status=OcrStatus.PENDING,
                    created_at=now,
                    updated_at=now
                )
                created.append(self.uow.ocr_results.create(result))

        logger.info(
            f"Created {len(created)} OCR records for student {student_id}, "
            f"skipped {len(existing_file_ids)} files with existing results"
        )
        return created

    def find_by_id(self, ocr_result_id: str, processed_by: Optional[str] = None) -> OcrResult:
        """
        Get an OCR result visible to the caller

        Args:
            ocr_result_id: OCR result identifier
            processed_by: Caller identity; None only sees guest rows

        Returns:
            OcrResult: The OCR result

        Raises:
            EntityNotFoundError: If no row exists for this id and caller
        """
        result = self.uow.ocr_results.find_by_id(ocr_result_id)
        if result is None or result.processed_by != processed_by:
            raise EntityNotFoundError(f"No OCR result found for id {ocr_result_id}")
        return result

    def mark_as_processing(self, results: Sequence[OcrResult]) -> List[OcrResult]:
        if not results:
            return []
        now = datetime.utcnow()
        updated = [transition_ocr(result, OcrStatus.PROCESSING, now=now) for result in results]
        return self.uow.ocr_results.update_many(updated)

    def mark_as_failed(
        self,
        results: Sequence[OcrResult],
        error_message: str,
        start_time: datetime
    ) -> List[OcrResult]:
        """
        Mark every row of a batch FAILED with the same error

        Calling it twice leaves the rows FAILED with the latest message and metadata.

        Args:
            results: Rows of the batch
            error_message: Failure description stored on each row
            start_time: Batch start, used for processing_time_ms

        Returns:
            List[OcrResult]: Updated rows
        """
        if not results:
            return []

        now = datetime.utcnow()
        metadata = OcrMetadata(
            extracted_at=now,
            processing_time_ms=_elapsed_ms(start_time, now),
            total_files_processed=len(results),
            successful_files=0,
            failed_files=len(results),
        )
        updated = [
            transition_ocr(result, OcrStatus.FAILED, now=now,
                           error_message=error_message, metadata=metadata)
            for result in results
        ]
        self.uow.ocr_results.update_many(updated)
        logger.error(f"Marked {len(updated)} OCR results as FAILED: {error_message}")
        return updated

    def update_results(
        self,
        initial_results: Sequence[OcrResult],
        batch_extraction_result: BatchScoreExtractionResult,
        processing_start_time: datetime
    ) -> List[OcrResult]:
        """
        Apply a batch extraction result to the rows created for it

        Rows are matched by file id. A row without a matching extraction
        result becomes FAILED with MISSING_RESULT_MESSAGE. Scores outside
        0-10 are dropped: the row becomes PARTIAL when other scores remain and
        FAILED when none do, with the rejected scores in error_message.

        Args:
            initial_results: Rows created for the batch
            batch_extraction_result: Output of the score extractor
            processing_start_time: Batch start, used for processing_time_ms

        Returns:
            List[OcrResult]: Updated rows, in the order of initial_results
        """
        if not initial_results:
            return []

        now = datetime.utcnow()
        metadata = OcrMetadata(
            extracted_at=now,
            processing_time_ms=_elapsed_ms(processing_start_time, now),
            total_files_processed=len(batch_extraction_result.results),
            successful_files=batch_extraction_result.successful_files,
            failed_files=batch_extraction_result.failed_files,
            ocr_model=batch_extraction_result.ocr_model or "unknown",
        )
        by_file_id = {r.file_id: r for r in batch_extraction_result.results}

        updated = []
        for result in initial_results:
            extraction: Optional[FileScoreExtractionResult] = by_file_id.get(result.file_id)
            if extraction is None:
                updated.append(transition_ocr(
                    result, OcrStatus.FAILED, now=now,
                    error_message=MISSING_RESULT_MESSAGE, metadata=metadata
                ))
                continue
            status = OcrStatus.COMPLETED if extraction.success else OcrStatus.FAILED
            scores, error_message = list(extraction.scores), extraction.error
            if extraction.success:
                scores, invalid = _split_scores(extraction.scores)
                if invalid:
                    status = OcrStatus.PARTIAL if scores else OcrStatus.FAILED
                    error_message = _out_of_range_message(invalid)
                    logger.warning(f"OCR result {result.id}: {error_message}")
            updated.append(transition_ocr(
                result,
                status,
                now=now,
                scores=scores,
                document_annotation=extraction.document_annotation,
                error_message=error_message,
                metadata=metadata
            ))

        self.uow.ocr_results.update_many(updated)
        logger.info(f"Successfully updated {len(updated)} OCR results")
        return updated

    def count_completed_for_student(self, student_id: str) -> int:
        return self.uow.ocr_results.count_by_student_and_status(student_id, OcrStatus.COMPLETED)

    def find_completed_for_student(self, student_id: str) -> List[OcrResult]:
        return self.uow.ocr_results.find_by_student(student_id, OcrStatus.COMPLETED)
