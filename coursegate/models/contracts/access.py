"""
Course access contracts.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class AccessCheckResponse(BaseModel):
    """Access decision for a course."""

    course_id: UUID
    granted: bool
    reason: str
    passkey_id: str | None = None
    expires_at: datetime | None = None
