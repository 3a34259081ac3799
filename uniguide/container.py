"""
Application wiring
Builds the object graph shared by the HTTP app and the event listeners
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from .config import AppConfig
from .database import DatabaseConnection, DatabaseSchema, UnitOfWork
from .events import (
    EventDispatcher,
    OcrEventListener,
    StudentEventListener,
    TranscriptEventListener,
    register_listeners,
)
from .logger import configure_logging, logger
from .prediction.client import PredictionServiceClient
from .services.ocr_result_service import OcrResultService
from .services.prediction_l1_service import PredictionL1Service
from .services.prediction_l2_service import PredictionL2Service
from .services.prediction_l3_service import PredictionL3Service
from .services.prediction_processor import PredictionProcessor
from .services.prediction_result_service import PredictionResultService
from .services.score_extraction import ScoreExtractor
from .workers.ocr_batch_processor import OcrBatchProcessor


@dataclass
class Container:
    """Services wired for one process"""
    config: AppConfig
    db: DatabaseConnection
    uow: UnitOfWork
    client: PredictionServiceClient
    l1_service: PredictionL1Service
    l2_service: PredictionL2Service
    l3_service: PredictionL3Service
    prediction_results: PredictionResultService
    ocr_results: OcrResultService
    processor: PredictionProcessor
    dispatcher: EventDispatcher
    ocr_processor: Optional[OcrBatchProcessor] = None

    async def aclose(self) -> None:
        await self.client.aclose()
        self.db.close()


def build_container(
    config: Optional[AppConfig] = None,
    extractor: Optional[ScoreExtractor] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> Container:
    """
    Build and wire every service

    Args:
        config: Application settings (defaults to AppConfig.from_env())
        extractor: OCR collaborator; OCR submission is unavailable without one
        transport: Optional httpx transport for the prediction client

    Returns:
        Container: Wired services
    """
    config = config or AppConfig.from_env()
    configure_logging(config.log_level)
    db = DatabaseConnection(config.database_path)
    DatabaseSchema.initialize_database(db.get_connection())
    logger.info(f"Database initialized at {config.database_path}")

    uow = UnitOfWork(db)
    client = PredictionServiceClient(config.prediction, transport=transport)
    l1_service = PredictionL1Service(uow, client, config.prediction)
    l2_service = PredictionL2Service(uow, client, config.prediction)
    l3_service = PredictionL3Service(uow, client, config.prediction)
    processor = PredictionProcessor(uow, l1_service, l2_service, l3_service)

    dispatcher = register_listeners(
        EventDispatcher(),
        OcrEventListener(processor, uow),
        TranscriptEventListener(processor, uow),
        StudentEventListener(processor),
    )

    ocr_results = OcrResultService(uow)
    ocr_processor = None
    if extractor is not None:
        ocr_processor = OcrBatchProcessor(uow, extractor, dispatcher, ocr_results)
    else:
        logger.warning("No score extractor configured; OCR submission is disabled")

    return Container(
        config=config,
        db=db,
        uow=uow,
        client=client,
        l1_service=l1_service,
        l2_service=l2_service,
        l3_service=l3_service,
        prediction_results=PredictionResultService(uow),
        ocr_results=ocr_results,
        processor=processor,
        dispatcher=dispatcher,
        ocr_processor=ocr_processor,
    )
