"""
Student contracts (API request/response schemas).
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from coursegate.models.contracts.passkeys import PasskeyPublic


class DeviceRegisterRequest(BaseModel):
    """Device registration request model."""

    device_id: str = Field(..., min_length=1, max_length=255)
    name: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=320)
    phone_number: str | None = Field(default=None, max_length=20)


class ClaimPasskeyRequest(DeviceRegisterRequest):
    """Claim a passkey from a device."""

    passkey_id: str = Field(..., min_length=1, max_length=32)


class LoginRequest(BaseModel):
    """Student login with passkey and device."""

    passkey_id: str = Field(..., min_length=1, max_length=32)
    device_id: str = Field(..., min_length=1, max_length=255)


class SwitchPasskeyRequest(BaseModel):
    """Select which owned passkey is active."""

    passkey_id: str = Field(..., min_length=1, max_length=32)


class StudentPublic(BaseModel):
    """Student public response model."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    device_id: str
    name: str | None
    email: str | None
    phone_number: str | None
    created_at: datetime


class OwnedPasskeyPublic(BaseModel):
    """Entry of a student's owned-passkey list."""

    model_config = ConfigDict(from_attributes=True)

    passkey_id: str
    institute_id: UUID
    course_id: UUID
    is_active: bool
    added_at: datetime
    activated_at: datetime | None
    expires_at: datetime | None


class OwnedPasskeyList(BaseModel):
    """Owned passkeys of a student."""

    items: list[OwnedPasskeyPublic]
    active_passkey_id: str | None = None


class LoginResponse(BaseModel):
    """Bearer token for a student session."""

    access_token: str
    token_type: str = "bearer"
    student: StudentPublic
    passkey: PasskeyPublic


class ClaimPasskeyResponse(LoginResponse):
    """Claim result with the owned entry and a session token."""

    entry: OwnedPasskeyPublic
