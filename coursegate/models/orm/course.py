"""
Course and CoursePricing ORM models.

Courses are managed by the content side of the platform; this service only
reads them to check institute ownership and to price enrollments.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coursegate.models.enums import CurrencyCode, PricingModel
from coursegate.models.orm.base import Base, UTCDateTime


class Course(Base):
    """Course database table (read-only from this service)."""

    __tablename__ = "courses"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    institute_id: Mapped[UUID] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )

    pricing: Mapped["CoursePricing | None"] = relationship(back_populates="course")

    __table_args__ = (Index("ix_courses_institute_id", "institute_id"),)


class CoursePricing(Base):
    """Pricing configuration of a course."""

    __tablename__ = "course_pricing"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    course_id: Mapped[UUID] = mapped_column(ForeignKey("courses.id"), unique=True)
    institute_id: Mapped[UUID] = mapped_column(nullable=False)
    pricing_model: Mapped[str] = mapped_column(String(20), default=PricingModel.FREE.value)
    currency: Mapped[str] = mapped_column(String(3), default=CurrencyCode.INR.value)
    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    # Months per subscription period (SUBSCRIPTION only)
    subscription_duration: Mapped[int | None] = mapped_column(Integer, default=None)
    # Fixed access window for ONE_TIME / ALREADY_PAID; None = follow the passkey
    access_duration_months: Mapped[int | None] = mapped_column(Integer, default=None)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"))
    tax_included: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    course: Mapped["Course"] = relationship(back_populates="pricing")
