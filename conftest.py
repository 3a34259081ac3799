"""
Shared pytest fixtures
In-memory database, sample student profiles and a mocked prediction service
"""
from datetime import datetime
from typing import Callable, List, Optional
import json
import uuid

import httpx
import pytest

from uniguide.config import ChunkPolicy, PredictionServiceConfig
from uniguide.database import DatabaseConnection, DatabaseSchema, UnitOfWork
from uniguide.database.models import (
    Award,
    ExamScenario,
    FileRecord,
    GradeRecord,
    LanguageCertification,
    OcrResult,
    OcrStatus,
    SpecialStudentCase,
    Student,
    SubjectScore,
    UniType,
)
from uniguide.prediction.batch_invoker import RetryingBatchInvoker
from uniguide.prediction.client import PredictionServiceClient
from uniguide.services.score_extraction import BatchScoreExtractionResult, FileScoreExtractionResult

USER_ID = "user-123"


async def no_sleep(seconds: float) -> None:
    return None


def fast_invoker(config) -> RetryingBatchInvoker:
    return RetryingBatchInvoker(config, sleep=no_sleep)


@pytest.fixture
def db():
    connection = DatabaseConnection(":memory:")
    DatabaseSchema.initialize_database(connection.get_connection())
    yield connection
    connection.close()


@pytest.fixture
def uow(db):
    return UnitOfWork(db)


@pytest.fixture
def service_config():
    return PredictionServiceConfig(
        hostname="predict.test",
        port=8000,
        max_retries=2,
        retry_base_delay_ms=1,
        request_delay_ms=0,
        l1=ChunkPolicy(chunk_size=2, chunk_delay_ms=0),
        l2=ChunkPolicy(chunk_size=2, chunk_delay_ms=0),
        l3=ChunkPolicy(chunk_size=2, chunk_delay_ms=0),
    )


def make_student(**overrides) -> Student:
    values = dict(
        id=str(uuid.uuid4()),
        province="Hà Nội",
        max_budget=30000000,
        uni_type=UniType.PUBLIC,
        major_groups=[748, 752],
        user_id=USER_ID,
        awards=[Award(subject="MATHEMATICS", rank=2)],
        special_cases=[SpecialStudentCase.ETHNIC_MINORITY_STUDENT],
        grade_records=[
            GradeRecord(grade=10, conduct=1, academic_performance=1),
            GradeRecord(grade=11, conduct=1, academic_performance=2),
            GradeRecord(grade=12, conduct=1, academic_performance=1),
        ],
        exam_scenarios=[ExamScenario(subject_group="A00", score=26.5)],
        language_certifications=[LanguageCertification(name="IELTS", level="6.5")],
    )
    values.update(overrides)
    return Student(**values)


@pytest.fixture
def student(uow) -> Student:
    return uow.students.save(make_student())


def add_file(uow: UnitOfWork, student_id: str, file_name: str,
             description: Optional[str] = None, tags: Optional[List[str]] = None) -> FileRecord:
    return uow.files.create(FileRecord(
        id=str(uuid.uuid4()),
        student_id=student_id,
        file_name=file_name,
        created_at=datetime.utcnow(),
        description=description,
        tags=tags or [],
    ))


def add_completed_ocr(uow: UnitOfWork, file: FileRecord, scores: dict,
                      processed_by: Optional[str] = USER_ID) -> OcrResult:
    now = datetime.utcnow()
    return uow.ocr_results.create(OcrResult(
        id=str(uuid.uuid4()),
        file_id=file.id,
        student_id=file.student_id,
        status=OcrStatus.COMPLETED,
        created_at=now,
        updated_at=now,
        processed_by=processed_by,
        scores=[SubjectScore(subject_name=name, score=score) for name, score in scores.items()],
    ))


def full_year_transcripts(uow: UnitOfWork, student_id: str) -> List[OcrResult]:
    """Three completed full-year transcripts, one per grade"""
    results = []
    for grade in (10, 11, 12):
        file = add_file(uow, student_id, f"transcript grade {grade}.pdf")
        results.append(add_completed_ocr(uow, file, {"Toán": 8.0 + (grade - 10) * 0.5, "Ngữ văn": 7.5}))
    return results


def l1_response(request: httpx.Request) -> list:
    items = json.loads(request.content)["items"]
    return [
        {"loai_uu_tien": "hsg" if item["hsg_2"] else "thuong", "ma_xet_tuyen": {f"QHT{item['nhom_nganh']}": 24.0}}
        for item in items
    ]


def l2_response(request: httpx.Request) -> list:
    items = json.loads(request.content)["items"]
    return [{"ma_xet_tuyen": f"BKA{item['nhom_nganh']}", "score": item["diem_chuan"]} for item in items]


def l3_response(request: httpx.Request) -> list:
    items = json.loads(request.content)
    return [
        [{"result": {"QHI": [{
            "best_to_hop": ["A00"],
            "best_to_hop_score": 24.5,
            "bonus_points": 1.0,
            "diem_chuan": 23.0,
            "ma_nganh": f"7{item['nhom_nganh']}01",
            "nhom_nganh": item["nhom_nganh"],
            "ten_nganh": "Công nghệ thông tin",
            "total_score": 25.5,
        }]}}]
        for item in items
    ]


ROUTES = {
    "/predict/l1/batch": l1_response,
    "/predict/l2/batch": l2_response,
    "/calculate/l3/batch": l3_response,
}


class PredictionServer:
    """httpx.MockTransport handler answering like the prediction service; records requests"""

    def __init__(self, routes=None, status_by_path=None):
        self.routes = dict(ROUTES if routes is None else routes)
        self.status_by_path = dict(status_by_path or {})
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/health":
            return httpx.Response(200, json={"status": "ok"})
        if path in self.status_by_path:
            return httpx.Response(self.status_by_path[path], text="upstream error")
        handler = self.routes.get(path)
        if handler is None:
            return httpx.Response(404, json={"detail": "Not Found"})
        return httpx.Response(200, json=handler(request))

    def bodies(self, path: str) -> list:
        return [json.loads(r.content) for r in self.requests if r.url.path == path]


@pytest.fixture
def prediction_server() -> PredictionServer:
    return PredictionServer()


@pytest.fixture
def make_client(service_config) -> Callable[..., PredictionServiceClient]:
    def factory(handler, config: Optional[PredictionServiceConfig] = None) -> PredictionServiceClient:
        return PredictionServiceClient(config or service_config, transport=httpx.MockTransport(handler))
    return factory


class FakeExtractor:
    """Reads every file as a transcript with fixed scores"""

    def __init__(self, fail_file_names=(), error=None):
        self.fail_file_names = set(fail_file_names)
        self.error = error
        self.calls = []

    async def extract_batch(self, files):
        self.calls.append([f.id for f in files])
        if self.error:
            raise self.error
        return BatchScoreExtractionResult(
            results=[
                FileScoreExtractionResult(
                    file_id=f.id,
                    file_name=f.file_name,
                    success=f.file_name not in self.fail_file_names,
                    scores=[SubjectScore("Toán", 8.0), SubjectScore("Ngữ văn", 7.0)],
                    error="blurry scan" if f.file_name in self.fail_file_names else None,
                )
                for f in files
            ],
            ocr_model="test-ocr",
        )

