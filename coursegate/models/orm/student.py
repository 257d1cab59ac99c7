"""
Student ORM models.

A student is identified by the device it registered from. Owned passkeys
live in student_passkeys; at most one row per student is active.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coursegate.models.orm.base import Base, UTCDateTime


class Student(Base):
    """Student database table."""

    __tablename__ = "students"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    device_id: Mapped[str] = mapped_column(String(255), unique=True)
    name: Mapped[str | None] = mapped_column(String(255), default=None)
    email: Mapped[str | None] = mapped_column(String(320), default=None)
    phone_number: Mapped[str | None] = mapped_column(String(20), default=None)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )

    passkeys: Mapped[list["StudentPasskey"]] = relationship(
        back_populates="student",
        order_by="StudentPasskey.added_at",
        cascade="all, delete-orphan",
    )


class StudentPasskey(Base):
    """Passkey owned by a student."""

    __tablename__ = "student_passkeys"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    student_id: Mapped[UUID] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"))
    passkey_id: Mapped[str] = mapped_column(ForeignKey("passkeys.passkey_id"))
    institute_id: Mapped[UUID] = mapped_column(nullable=False)
    course_id: Mapped[UUID] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)
    added_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=lambda: datetime.now(UTC)
    )
    activated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), default=None)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), default=None)

    student: Mapped["Student"] = relationship(back_populates="passkeys")

    __table_args__ = (
        UniqueConstraint("student_id", "passkey_id", name="uq_student_passkeys_student_passkey"),
        Index("ix_student_passkeys_student_active", "student_id", "is_active"),
    )
