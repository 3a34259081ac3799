"""
Repository interfaces and implementations
Provides data access layer for database operations
"""

from .base import BaseRepository
from .file_repository import FileRepository
from .ocr_result_repository import OcrResultRepository
from .prediction_result_repository import PredictionResultRepository
from .student_repository import StudentRepository

__all__ = [
    'BaseRepository',
    'FileRepository',
    'OcrResultRepository',
    'PredictionResultRepository',
    'StudentRepository',
]
