"""Common schemas used across the application."""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

T = TypeVar("T")

# Mobile-facing payloads use camelCase keys; snake_case is accepted too.
CAMEL_CONFIG = {"alias_generator": to_camel, "populate_by_name": True}


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic paginated response wrapper.

    Usage:
        response_model=PaginatedResponse[BatchSummary]

    Returns:
        {
            "items": [...],
            "total": 150,
            "limit": 50,
            "offset": 0
        }
    """
    items: list[T]
    total: int
    limit: int
    offset: int


class DataResponse(BaseModel, Generic[T]):
    """Envelope used by the mobile API: {"data": ..., "message": ...}."""
    data: T
    message: str | None = None
    warning: str | None = None


class MessageResponse(BaseModel):
    message: str
    data: dict[str, Any] | None = None


class Dimensions(BaseModel):
    width: float | None = None
    height: float | None = None
    length: float | None = None
