"""
UniGuide prediction orchestration
Batches student inputs, calls the ML prediction service and reconciles OCR transcripts with L1/L2/L3 predictions
"""

__version__ = "1.0.0"
