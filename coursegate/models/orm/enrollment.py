"""
Enrollment ORM model.

Durable record that a student may access a course. Unique per
(student, course); renewals extend the existing row. Rows are never
deleted, only deactivated.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Boolean, ForeignKey, Index, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from coursegate.models.enums import CurrencyCode, PaymentMethod
from coursegate.models.orm.base import Base, JSONType, UTCDateTime


class Enrollment(Base):
    """Enrollment database table."""

    __tablename__ = "enrollments"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    passkey_id: Mapped[str] = mapped_column(ForeignKey("passkeys.passkey_id"))
    course_id: Mapped[UUID] = mapped_column(ForeignKey("courses.id"))
    institute_id: Mapped[UUID] = mapped_column(nullable=False)
    student_id: Mapped[UUID] = mapped_column(ForeignKey("students.id"))

    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default=CurrencyCode.INR.value)
    payment_method: Mapped[str] = mapped_column(String(16), default=PaymentMethod.RAZORPAY.value)
    payment_id: Mapped[UUID | None] = mapped_column(ForeignKey("payments.id"), default=None)

    enrolled_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    # Column is "metadata"; the attribute name is reserved by DeclarativeBase
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        UniqueConstraint("student_id", "course_id", name="uq_enrollments_student_course"),
        Index("ix_enrollments_course_active", "course_id", "is_active"),
    )
