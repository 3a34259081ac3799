"""
Services layer for business logic
"""

from .ocr_result_service import OcrResultService
from .prediction_l1_service import PredictionL1Service
from .prediction_l2_service import PredictionL2Service
from .prediction_l3_service import PredictionL3Service
from .prediction_processor import PredictionProcessor
from .prediction_result_service import PredictionResultService

__all__ = [
    'OcrResultService',
    'PredictionL1Service',
    'PredictionL2Service',
    'PredictionL3Service',
    'PredictionProcessor',
    'PredictionResultService',
]
