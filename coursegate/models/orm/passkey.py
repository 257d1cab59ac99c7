"""
Passkey ORM models.

A passkey is a human-enterable access code that gates one course for one
student on one device. Status changes are logged in passkey_status_events;
platform fee settlements in platform_fee_payments.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coursegate.models.enums import PasskeyStatus, PlatformFeeStatus
from coursegate.models.orm.base import Base, UTCDateTime


class Passkey(Base):
    """Passkey database table."""

    __tablename__ = "passkeys"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    passkey_id: Mapped[str] = mapped_column(String(32), unique=True)  # "AB23CD45EF"
    institute_id: Mapped[UUID] = mapped_column(nullable=False)
    course_id: Mapped[UUID] = mapped_column(ForeignKey("courses.id"))
    generated_by: Mapped[UUID | None] = mapped_column(default=None)

    # Student assignment (single device binding)
    student_id: Mapped[UUID | None] = mapped_column(ForeignKey("students.id"), default=None)
    device_id: Mapped[str | None] = mapped_column(String(255), default=None)
    assigned_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), default=None)

    # Lifecycle
    status: Mapped[str] = mapped_column(String(32), default=PasskeyStatus.PENDING.value)
    duration_months: Mapped[int] = mapped_column(Integer, default=1)
    generated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )
    activated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), default=None)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), default=None)
    renewal_count: Mapped[int] = mapped_column(Integer, default=0)

    # Latest applied payment (payments.id; no FK, payments reference passkeys)
    payment_id: Mapped[UUID | None] = mapped_column(default=None)

    # Fee standing
    platform_fee_status: Mapped[str] = mapped_column(
        String(16), default=PlatformFeeStatus.PENDING.value
    )
    next_platform_fee_due: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=lambda: datetime.now(UTC)
    )
    has_course_access: Mapped[bool] = mapped_column(Boolean, default=False)

    # Usage tracking
    access_count: Mapped[int] = mapped_column(Integer, default=0)
    last_accessed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), default=None)

    status_history: Mapped[list["PasskeyStatusEvent"]] = relationship(
        back_populates="passkey",
        order_by="PasskeyStatusEvent.changed_at",
        cascade="all, delete-orphan",
    )
    platform_fee_payments: Mapped[list["PlatformFeePayment"]] = relationship(
        back_populates="passkey",
        order_by="PlatformFeePayment.paid_at",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_passkeys_institute_course", "institute_id", "course_id"),
        Index("ix_passkeys_status_expires_at", "status", "expires_at"),
        Index("ix_passkeys_student_id", "student_id"),
        Index("ix_passkeys_fee_due", "next_platform_fee_due", "platform_fee_status"),
    )


class PasskeyStatusEvent(Base):
    """Append-only status history entry of a passkey."""

    __tablename__ = "passkey_status_events"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    passkey_pk: Mapped[UUID] = mapped_column(ForeignKey("passkeys.id", ondelete="CASCADE"))
    status: Mapped[str] = mapped_column(String(32))
    changed_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )
    changed_by: Mapped[UUID | None] = mapped_column(default=None)
    changed_by_role: Mapped[str] = mapped_column(String(20), default="SYSTEM")
    reason: Mapped[str | None] = mapped_column(String(200), default=None)

    passkey: Mapped["Passkey"] = relationship(back_populates="status_history")

    __table_args__ = (Index("ix_passkey_status_events_passkey_pk", "passkey_pk"),)


class PlatformFeePayment(Base):
    """A settled platform fee period of a passkey."""

    __tablename__ = "platform_fee_payments"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    passkey_pk: Mapped[UUID] = mapped_column(ForeignKey("passkeys.id", ondelete="CASCADE"))
    payment_id: Mapped[UUID] = mapped_column(ForeignKey("payments.id"))
    gateway_payment_id: Mapped[str | None] = mapped_column(String(64), default=None)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    paid_by: Mapped[str] = mapped_column(String(16))
    month: Mapped[int] = mapped_column(Integer)
    year: Mapped[int] = mapped_column(Integer)
    paid_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=lambda: datetime.now(UTC)
    )
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime())

    passkey: Mapped["Passkey"] = relationship(back_populates="platform_fee_payments")
