"""
Caller identity for FastAPI
Reads the opaque user id forwarded by the authentication gateway
"""

from typing import Optional
from fastapi import Depends
from fastapi.security import APIKeyHeader


# Shows the "Authorize" button in Swagger UI; missing headers mean a guest caller
user_id_header = APIKeyHeader(name="X-User-Id", auto_error=False)


def get_optional_user_id(user_id: Optional[str] = Depends(user_id_header)) -> Optional[str]:
    """
    Return the caller's user id, or None for guest callers

    Args:
        user_id: Value of the X-User-Id header

    Returns:
        Optional[str]: Stripped user id or None
    """
    if user_id is None or not user_id.strip():
        return None
    return user_id.strip()
