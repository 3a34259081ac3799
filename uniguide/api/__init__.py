"""
API dependencies and utilities
"""

from .auth import get_optional_user_id

__all__ = [
    'get_optional_user_id',
]
