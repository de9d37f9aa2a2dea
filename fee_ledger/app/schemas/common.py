"""
Response envelope shared by every endpoint.
"""

from typing import Generic, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Successful response: HTTP status, payload and a human-readable message."""
    status_code: int
    data: T
    message: str
    success: bool = True


def ok(data, message: str, status_code: int = 200) -> dict:
    return {"status_code": status_code, "data": data, "message": message, "success": True}
