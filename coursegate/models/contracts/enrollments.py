"""
Enrollment contracts (API request/response schemas).
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from coursegate.models.contracts.common import PaginatedResponse


class EnrollmentPublic(BaseModel):
    """Enrollment public response model."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    passkey_id: str
    course_id: UUID
    institute_id: UUID
    student_id: UUID
    amount_paid: Decimal
    currency: str
    payment_method: str
    payment_id: UUID | None
    enrolled_at: datetime
    expires_at: datetime | None
    is_active: bool
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="metadata_")


class RefundRequest(BaseModel):
    """Refund request model."""

    reason: str | None = Field(default=None, max_length=500)


class CourseEnrollmentList(PaginatedResponse[EnrollmentPublic]):
    """Enrollments of a course."""

    active_count: int
