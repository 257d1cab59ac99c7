"""
Passkey contracts (API request/response schemas).
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from coursegate.models.enums import PasskeyStatus, PlatformFeeStatus
from coursegate.models.orm.passkey import Passkey, PasskeyStatusEvent
from coursegate.services import passkey_state


class PasskeyGenerateRequest(BaseModel):
    """Passkey batch generation request model."""

    course_id: UUID
    count: int = Field(..., description="Number of passkeys to generate (1-100)")
    duration_months: int = Field(default=1, description="Paid window per passkey: 1 or 12 months")


class PasskeyRevokeRequest(BaseModel):
    """Passkey revocation request model."""

    reason: str | None = Field(default=None, max_length=200)


class PasskeyValidateRequest(BaseModel):
    """Check a passkey against the device presenting it."""

    passkey_id: str = Field(..., min_length=1, max_length=32)
    device_id: str = Field(..., min_length=1, max_length=255)


class PasskeyStatusEventPublic(BaseModel):
    """Status history entry."""

    model_config = ConfigDict(from_attributes=True)

    status: PasskeyStatus
    changed_at: datetime
    changed_by: UUID | None
    changed_by_role: str
    reason: str | None


class PasskeyPublic(BaseModel):
    """Passkey public response model."""

    model_config = ConfigDict(from_attributes=True)

    passkey_id: str
    institute_id: UUID
    course_id: UUID
    student_id: UUID | None
    device_id: str | None
    status: PasskeyStatus = Field(..., description="Stored status")
    effective_status: PasskeyStatus = Field(..., description="Status as of now (lazy expiry applied)")
    duration_months: int
    generated_at: datetime
    assigned_at: datetime | None
    activated_at: datetime | None
    expires_at: datetime | None
    renewal_count: int
    platform_fee_status: PlatformFeeStatus
    next_platform_fee_due: datetime
    has_course_access: bool
    access_count: int
    last_accessed_at: datetime | None
    remaining_days: int
    is_renewable: bool

    @classmethod
    def from_passkey(cls, passkey: Passkey, now: datetime, grace_days: int = 30) -> "PasskeyPublic":
        return cls(
            passkey_id=passkey.passkey_id,
            institute_id=passkey.institute_id,
            course_id=passkey.course_id,
            student_id=passkey.student_id,
            device_id=passkey.device_id,
            status=PasskeyStatus(passkey.status),
            effective_status=passkey_state.effective_status(passkey, now),
            duration_months=passkey.duration_months,
            generated_at=passkey.generated_at,
            assigned_at=passkey.assigned_at,
            activated_at=passkey.activated_at,
            expires_at=passkey.expires_at,
            renewal_count=passkey.renewal_count,
            platform_fee_status=PlatformFeeStatus(passkey.platform_fee_status),
            next_platform_fee_due=passkey.next_platform_fee_due,
            has_course_access=passkey.has_course_access,
            access_count=passkey.access_count,
            last_accessed_at=passkey.last_accessed_at,
            remaining_days=passkey_state.remaining_days(passkey, now),
            is_renewable=passkey_state.is_renewable(passkey, now, grace_days),
        )


class PasskeyDetail(PasskeyPublic):
    """Passkey with its status history."""

    status_history: list[PasskeyStatusEventPublic] = Field(default_factory=list)

    @classmethod
    def from_passkey_with_history(
        cls,
        passkey: Passkey,
        history: list[PasskeyStatusEvent],
        now: datetime,
        grace_days: int = 30,
    ) -> "PasskeyDetail":
        base = PasskeyPublic.from_passkey(passkey, now, grace_days)
        return cls(
            **base.model_dump(),
            status_history=[PasskeyStatusEventPublic.model_validate(e) for e in history],
        )


class PasskeyGenerateResponse(BaseModel):
    """Passkey batch generation response model."""

    count: int
    passkeys: list[PasskeyPublic]
