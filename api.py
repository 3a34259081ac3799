"""
FastAPI server for UniGuide

This module exposes the prediction and OCR pipelines over HTTP.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from uniguide.api.auth import get_optional_user_id
from uniguide.container import Container, build_container
from uniguide.database.models import OcrResult, PredictionResult
from uniguide.exceptions import (
    ConfigurationError,
    EntityNotFoundError,
    IllegalArgumentError,
    InputValidationError,
    InvalidStateTransitionError,
    PredictionServiceError,
    PredictionValidationError,
)
from uniguide.logger import logger


# Response models
class HealthResponse(BaseModel):
    status: str
    prediction_service: str


class PredictionResultResponse(BaseModel):
    """Stored prediction result of a student"""
    id: str
    student_id: str
    status: str
    l1_results: Optional[List[Dict[str, Any]]] = None
    l2_results: Optional[List[Dict[str, Any]]] = None
    l3_results: Optional[List[Dict[str, Any]]] = None
    updated_at: datetime


class PredictionAcceptedResponse(BaseModel):
    student_id: str
    prediction_result_id: str
    status: str
    message: str


class SubmitOcrRequest(BaseModel):
    """Files to run OCR on"""
    file_ids: List[str] = Field(..., description="Transcript file identifiers", min_length=1)


class OcrAcceptedResponse(BaseModel):
    student_id: str
    ocr_result_ids: List[str]
    message: str


class SubjectScoreResponse(BaseModel):
    subject_name: str
    score: float


class OcrResultResponse(BaseModel):
    id: str
    file_id: str
    student_id: str
    status: str
    scores: List[SubjectScoreResponse] = []
    document_annotation: Optional[str] = None
    error_message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    updated_at: datetime


def _prediction_response(result: PredictionResult) -> PredictionResultResponse:
    return PredictionResultResponse(
        id=result.id,
        student_id=result.student_id,
        status=result.status.value,
        l1_results=result.l1_results,
        l2_results=result.l2_results,
        l3_results=result.l3_results,
        updated_at=result.updated_at,
    )


def _ocr_response(result: OcrResult) -> OcrResultResponse:
    return OcrResultResponse(
        id=result.id,
        file_id=result.file_id,
        student_id=result.student_id,
        status=result.status.value,
        scores=[SubjectScoreResponse(**s.to_dict()) for s in result.scores],
        document_annotation=result.document_annotation,
        error_message=result.error_message,
        metadata=result.metadata.to_dict() if result.metadata else None,
        updated_at=result.updated_at,
    )


def _error(status_code: int, error: str, detail: Any = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "detail": detail})


def create_app(container: Optional[Container] = None) -> FastAPI:
    """
    Build the FastAPI application

    Args:
        container: Wired services (built from the environment on first use if omitted)

    Returns:
        FastAPI: Application instance
    """
    app = FastAPI(
        title="UniGuide Prediction API",
        description="""
University admission guidance: L1/L2/L3 program predictions and transcript OCR.

## Identity

Send the caller's user id in the **X-User-Id** header. Requests without it act
as a guest and only see guest records.
        """,
        version="1.0.0",
    )
    state: Dict[str, Container] = {}
    if container is not None:
        state["container"] = container

    def get_container() -> Container:
        if "container" not in state:
            state["container"] = build_container()
        return state["container"]

    @app.on_event("shutdown")
    async def shutdown_event():
        """Close the prediction client and database connections"""
        if "container" in state:
            await state["container"].aclose()

    async def run_prediction_task(student_id: str, user_id: Optional[str]) -> None:
        try:
            await get_container().processor.process_student_prediction(student_id, user_id)
        except Exception as e:
            logger.error(f"Background prediction for student {student_id} failed: {str(e)}")

    @app.get("/", tags=["Health"])
    async def root():
        """Root endpoint - API health check"""
        return {
            "message": "UniGuide Prediction API is running",
            "version": "1.0.0",
            "docs": "/docs",
        }

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(container: Container = Depends(get_container)):
        """Service health, including the prediction service"""
        healthy = await container.client.health_check()
        return HealthResponse(status="healthy", prediction_service="up" if healthy else "down")

    @app.get("/predictions/{student_id}", response_model=PredictionResultResponse, tags=["Predictions"])
    async def get_predictions(
        student_id: str,
        user_id: Optional[str] = Depends(get_optional_user_id),
        container: Container = Depends(get_container)
    ):
        """Completed L1/L2/L3 results for the caller"""
        return _prediction_response(container.prediction_results.get_completed(student_id, user_id))

    @app.get("/predictions/{student_id}/l1", tags=["Predictions"])
    async def get_l1_predictions(
        student_id: str,
        user_id: Optional[str] = Depends(get_optional_user_id),
        container: Container = Depends(get_container)
    ):
        results = container.l1_service.get_l1_predict_results(student_id, user_id)
        return [r.model_dump() for r in results]

    @app.get("/predictions/{student_id}/l2", tags=["Predictions"])
    async def get_l2_predictions(
        student_id: str,
        user_id: Optional[str] = Depends(get_optional_user_id),
        container: Container = Depends(get_container)
    ):
        results = container.l2_service.get_l2_predict_results(student_id, user_id)
        return [r.model_dump() for r in results]

    @app.get("/predictions/{student_id}/l3", tags=["Predictions"])
    async def get_l3_predictions(
        student_id: str,
        user_id: Optional[str] = Depends(get_optional_user_id),
        container: Container = Depends(get_container)
    ):
        results = container.l3_service.get_l3_predict_results(student_id, user_id)
        return [r.model_dump() for r in results]

    @app.post(
        "/students/{student_id}/predictions",
        response_model=PredictionAcceptedResponse,
        status_code=status.HTTP_202_ACCEPTED,
        tags=["Predictions"],
        summary="Run L1 and L2 predictions",
    )
    async def start_prediction(
        student_id: str,
        background_tasks: BackgroundTasks,
        user_id: Optional[str] = Depends(get_optional_user_id),
        container: Container = Depends(get_container)
    ):
        """
        Start an L1/L2 prediction run in the background.

        Poll GET /predictions/{student_id} for the result.
        """
        if container.uow.students.find_by_id(student_id) is None:
            raise EntityNotFoundError(f"Student {student_id} not found")

        record = container.prediction_results.start_processing(student_id, user_id)
        background_tasks.add_task(run_prediction_task, student_id, user_id)
        logger.info(f"Queued L1/L2 prediction {record.id} for student {student_id}")
        return PredictionAcceptedResponse(
            student_id=student_id,
            prediction_result_id=record.id,
            status=record.status.value,
            message="Prediction started",
        )

    @app.post(
        "/students/{student_id}/ocr",
        response_model=OcrAcceptedResponse,
        status_code=status.HTTP_202_ACCEPTED,
        tags=["OCR"],
        summary="Submit transcript files for OCR",
    )
    async def submit_ocr(
        student_id: str,
        request: SubmitOcrRequest,
        background_tasks: BackgroundTasks,
        user_id: Optional[str] = Depends(get_optional_user_id),
        container: Container = Depends(get_container)
    ):
        """
        Create OCR records for the files and extract scores in the background.

        Files that already have an OCR record are skipped.
        """
        if container.ocr_processor is None:
            raise HTTPException(status_code=503, detail="OCR is not configured")
        if container.uow.students.find_by_id(student_id) is None:
            raise EntityNotFoundError(f"Student {student_id} not found")

        initial = container.ocr_processor.submit(student_id, user_id, request.file_ids)
        background_tasks.add_task(container.ocr_processor.process_batch, student_id, user_id, initial)
        return OcrAcceptedResponse(
            student_id=student_id,
            ocr_result_ids=[r.id for r in initial],
            message=f"OCR started for {len(initial)} files",
        )

    @app.get("/ocr-results/{ocr_result_id}", response_model=OcrResultResponse, tags=["OCR"])
    async def get_ocr_result(
        ocr_result_id: str,
        user_id: Optional[str] = Depends(get_optional_user_id),
        container: Container = Depends(get_container)
    ):
        return _ocr_response(container.ocr_results.find_by_id(ocr_result_id, user_id))

    # Exception handlers
    @app.exception_handler(EntityNotFoundError)
    async def not_found_handler(request: Request, exc: EntityNotFoundError):
        return _error(404, "Not found", str(exc))

    @app.exception_handler(IllegalArgumentError)
    async def illegal_argument_handler(request: Request, exc: IllegalArgumentError):
        return _error(400, "Bad request", str(exc))

    @app.exception_handler(InvalidStateTransitionError)
    async def state_transition_handler(request: Request, exc: InvalidStateTransitionError):
        return _error(409, "Conflict", str(exc))

    @app.exception_handler(InputValidationError)
    async def input_validation_handler(request: Request, exc: InputValidationError):
        return _error(422, "Invalid prediction input", exc.issues)

    @app.exception_handler(PredictionServiceError)
    async def prediction_service_handler(request: Request, exc: PredictionServiceError):
        if isinstance(exc, PredictionValidationError):
            return _error(422, "Prediction service rejected the input", exc.detail)
        logger.error(f"Prediction service error: {str(exc)}")
        return _error(502, "Prediction service error", str(exc))

    @app.exception_handler(ConfigurationError)
    async def configuration_handler(request: Request, exc: ConfigurationError):
        logger.error(f"Configuration error: {str(exc)}")
        return _error(500, "Configuration error", str(exc))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions"""
        return _error(exc.status_code, exc.detail)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions"""
        logger.error(f"Unhandled exception: {str(exc)}")
        return _error(500, "Internal server error", str(exc))

    return app


app = create_app()


def main():
    """Run the FastAPI server"""
    uvicorn.run(
        "api:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )


if __name__ == "__main__":
    main()
