"""
Payment ORM model.

One row per gateway order. Amounts are stored in major currency units;
the gateway client converts to minor units when creating the order.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from coursegate.models.enums import CurrencyCode, PaymentStatus, PaymentType
from coursegate.models.orm.base import Base, UTCDateTime


class Payment(Base):
    """Payment database table."""

    __tablename__ = "payments"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    order_id: Mapped[str] = mapped_column(String(64), unique=True)
    gateway_payment_id: Mapped[str | None] = mapped_column(String(64), unique=True, default=None)
    signature: Mapped[str | None] = mapped_column(String(128), default=None)

    institute_id: Mapped[UUID] = mapped_column(nullable=False)
    course_id: Mapped[UUID] = mapped_column(ForeignKey("courses.id"))
    passkey_id: Mapped[str] = mapped_column(ForeignKey("passkeys.passkey_id"))
    student_id: Mapped[UUID | None] = mapped_column(ForeignKey("students.id"), default=None)
    device_id: Mapped[str | None] = mapped_column(String(255), default=None)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    platform_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    course_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default=CurrencyCode.INR.value)
    duration_months: Mapped[int] = mapped_column(Integer, default=1)
    payment_type: Mapped[str] = mapped_column(String(20), default=PaymentType.COMBINED.value)

    status: Mapped[str] = mapped_column(String(16), default=PaymentStatus.CREATED.value)
    failure_reason: Mapped[str | None] = mapped_column(String(255), default=None)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), default=None)

    __table_args__ = (
        Index("ix_payments_institute_created", "institute_id", "created_at"),
        Index("ix_payments_passkey_id", "passkey_id"),
        Index("ix_payments_status", "status"),
    )

    @property
    def is_completed(self) -> bool:
        return self.status == PaymentStatus.COMPLETED.value
