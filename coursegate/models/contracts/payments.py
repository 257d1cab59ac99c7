"""
Payment contracts (API request/response schemas).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from coursegate.models.contracts.enrollments import EnrollmentPublic
from coursegate.models.contracts.passkeys import PasskeyPublic
from coursegate.models.enums import PaymentStatus, PaymentType


class CheckoutRequest(BaseModel):
    """Open a payment order for a claimed passkey."""

    passkey_id: str | None = Field(
        default=None, description="Passkey to pay for (defaults to the session passkey)"
    )
    payment_type: PaymentType = PaymentType.COMBINED


class RenewalRequest(BaseModel):
    """Open a renewal order for an expired passkey."""

    passkey_id: str | None = None
    duration_months: int = Field(..., description="1 or 12 months")


class CheckoutOrderResponse(BaseModel):
    """Gateway order details for the client checkout widget."""

    order_id: str
    key_id: str | None
    passkey_id: str
    payment_type: PaymentType
    amount: Decimal
    amount_minor_units: int
    currency: str
    course_fee: Decimal
    tax: Decimal
    platform_fee: Decimal
    duration_months: int


class VerifyPaymentRequest(BaseModel):
    """Gateway callback fields to verify."""

    order_id: str = Field(..., min_length=1, max_length=64)
    payment_id: str = Field(..., min_length=1, max_length=64)
    signature: str = Field(..., min_length=1, max_length=128)


class PaymentFailedRequest(BaseModel):
    """Gateway failure callback."""

    order_id: str = Field(..., min_length=1, max_length=64)
    reason: str = Field(default="Payment failed", max_length=255)


class PaymentPublic(BaseModel):
    """Payment public response model."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_id: str
    gateway_payment_id: str | None
    institute_id: UUID
    course_id: UUID
    passkey_id: str
    student_id: UUID | None
    amount: Decimal
    platform_fee: Decimal
    course_fee: Decimal
    currency: str
    duration_months: int
    payment_type: PaymentType
    status: PaymentStatus
    failure_reason: str | None
    created_at: datetime
    completed_at: datetime | None


class VerifyPaymentResponse(BaseModel):
    """Result of a payment verification."""

    payment: PaymentPublic
    passkey: PasskeyPublic
    enrollment: EnrollmentPublic | None
    newly_completed: bool
    sms_delivered: bool = False


class PaymentStats(BaseModel):
    """Payment counts and revenue of an institute."""

    total: int
    completed: int
    failed: int
    pending: int
    total_revenue: Decimal
