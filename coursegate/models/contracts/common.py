"""
Response envelopes shared by every router.
"""

from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ErrorResponse(BaseModel):
    """
    Body of every non-2xx response.

    ``error`` is a stable machine code (``conflict``, ``not_found`` ...);
    ``details`` carries structured context such as ``current_state``.
    """

    error: str
    message: str
    details: dict[str, Any] | None = None


class HealthResponse(BaseModel):
    status: Literal["healthy", "degraded"] = "healthy"
    database: Literal["ok", "unreachable"] = "ok"
    version: str


class PaginatedResponse(BaseModel, Generic[T]):
    """One page of a list endpoint."""

    items: list[T]
    total: int = Field(..., description="Rows matching the filters, ignoring paging")
    limit: int = Field(..., description="Page size requested")
    offset: int = Field(..., description="Rows skipped before this page")
