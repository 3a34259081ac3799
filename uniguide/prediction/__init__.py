"""
Prediction service integration
HTTP client, batch invoker and payload schemas for the remote ML predictor
"""

from .batch_invoker import BatchConfig, BatchResult, CompletedChunk, FailedChunk, RetryingBatchInvoker, chunk_items
from .client import PredictionServiceClient

__all__ = [
    'BatchConfig',
    'BatchResult',
    'CompletedChunk',
    'FailedChunk',
    'PredictionServiceClient',
    'RetryingBatchInvoker',
    'chunk_items',
]
