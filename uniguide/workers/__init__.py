"""
Background workers
"""

from .ocr_batch_processor import OcrBatchProcessor

__all__ = ['OcrBatchProcessor']
