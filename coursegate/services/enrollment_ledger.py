"""
Enrollment Ledger - durable course access grants.

An enrollment is written once a payment is verified and applied to its
passkey. It is the proof of access the evaluator checks first, so a later
passkey status change does not retroactively take back paid access.
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from coursegate.config import Settings, get_settings
from coursegate.core.auth import Actor, require_institute_member
from coursegate.core.errors import ConflictError, NotFoundError, PolicyError, ValidationError
from coursegate.core.timeutils import add_months, utcnow
from coursegate.models.enums import PaymentMethod, PaymentStatus, PricingModel
from coursegate.models.orm.enrollment import Enrollment
from coursegate.models.orm.passkey import Passkey
from coursegate.models.orm.payment import Payment
from coursegate.repositories.course import CourseRepository
from coursegate.repositories.enrollment import EnrollmentRepository
from coursegate.repositories.passkey import PasskeyRepository
from coursegate.services.catalog import CourseCatalog, CoursePricingInfo

logger = logging.getLogger(__name__)


class EnrollmentLedger:
    """Service for enrollment creation, renewal and refunds."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()
        self.enrollments = EnrollmentRepository(db)
        self.passkeys = PasskeyRepository(db)
        self.courses = CourseRepository(db)
        self.catalog = CourseCatalog(db, self.settings)

    async def enroll(
        self,
        passkey_id: str,
        course_id: UUID,
        student_id: UUID,
        payment: Payment,
    ) -> Enrollment:
        """
        Create or extend the enrollment of a student in a course.

        A renewal extends the existing row: expires_at moves to the later of
        the old and new windows and amount_paid accumulates.

        Raises:
            ValidationError: If the payment is not COMPLETED for this passkey,
                the passkey does not grant this course, or the computed
                expiry is not after the enrollment time
            NotFoundError: If the passkey or the course pricing is missing
        """
        if payment.status != PaymentStatus.COMPLETED.value:
            raise ValidationError("Payment is not completed", {"order_id": payment.order_id})
        if payment.passkey_id != passkey_id:
            raise ValidationError(
                "Payment does not belong to this passkey", {"order_id": payment.order_id}
            )

        passkey = await self.passkeys.get_by_code(passkey_id)
        if passkey is None:
            raise NotFoundError("Passkey not found")
        if passkey.course_id != course_id:
            raise ValidationError("Passkey does not grant access to this course")

        pricing = await self.catalog.get_pricing(course_id)
        now = utcnow()
        expires_at = self._compute_expiry(pricing, passkey, payment, now)

        enrollment = await self.enrollments.get_for_student_course(student_id, course_id)
        if enrollment is None:
            self._check_window(now, expires_at)
            enrollment = Enrollment(
                passkey_id=passkey_id,
                course_id=course_id,
                institute_id=passkey.institute_id,
                student_id=student_id,
                amount_paid=payment.amount,
                currency=payment.currency,
                payment_method=self._payment_method(pricing).value,
                payment_id=payment.id,
                enrolled_at=now,
                expires_at=expires_at,
                is_active=True,
                metadata_={},
            )
            enrollment = await self.enrollments.create(enrollment)
            logger.info(
                f"Enrolled student {student_id} in course {course_id}",
                extra={
                    "enrollment_id": str(enrollment.id),
                    "passkey_id": passkey_id,
                    "expires_at": expires_at.isoformat() if expires_at else None,
                },
            )
            return enrollment

        if enrollment.payment_id == payment.id:
            return enrollment

        if expires_at is not None and enrollment.expires_at is not None:
            expires_at = max(expires_at, enrollment.expires_at)
        self._check_window(enrollment.enrolled_at, expires_at)

        enrollment.passkey_id = passkey_id
        enrollment.expires_at = expires_at
        enrollment.amount_paid = enrollment.amount_paid + payment.amount
        enrollment.currency = payment.currency
        enrollment.payment_method = self._payment_method(pricing).value
        enrollment.payment_id = payment.id
        enrollment.is_active = True
        enrollment = await self.enrollments.update(enrollment)

        logger.info(
            f"Extended enrollment {enrollment.id} of student {student_id}",
            extra={
                "enrollment_id": str(enrollment.id),
                "passkey_id": passkey_id,
                "expires_at": expires_at.isoformat() if expires_at else None,
            },
        )
        return enrollment

    async def request_refund(
        self, actor_student_id: UUID, enrollment_id: UUID, reason: str | None = None
    ) -> Enrollment:
        """
        Request a refund within the refund window after enrollment.

        Deactivates the enrollment and stamps the request in its metadata.

        Raises:
            NotFoundError: If the enrollment is missing or not the student's
            ConflictError: If the enrollment is already inactive
            PolicyError: If the refund window has closed
        """
        enrollment = await self.enrollments.get_by_id(enrollment_id)
        if enrollment is None or enrollment.student_id != actor_student_id:
            raise NotFoundError("Enrollment not found")
        if not enrollment.is_active:
            raise ConflictError("Enrollment is not active")

        now = utcnow()
        window = timedelta(days=self.settings.refund_window_days)
        if now - enrollment.enrolled_at > window:
            raise PolicyError(
                f"Refund window of {self.settings.refund_window_days} days has closed",
                {"enrolled_at": enrollment.enrolled_at.isoformat()},
            )

        enrollment.is_active = False
        enrollment.metadata_ = {
            **(enrollment.metadata_ or {}),
            "refund_requested": True,
            "refund_request_date": now.isoformat(),
            "refund_reason": reason,
        }
        enrollment = await self.enrollments.update(enrollment)
        logger.info(
            f"Refund requested for enrollment {enrollment.id}",
            extra={"enrollment_id": str(enrollment.id), "student_id": str(actor_student_id)},
        )
        return enrollment

    async def mark_expired(self, enrollment: Enrollment, now: datetime | None = None) -> Enrollment:
        """Deactivate an enrollment whose window has passed."""
        now = now or utcnow()
        enrollment.is_active = False
        enrollment.metadata_ = {**(enrollment.metadata_ or {}), "expired_at": now.isoformat()}
        await self.db.flush()
        logger.info(f"Enrollment {enrollment.id} expired", extra={"enrollment_id": str(enrollment.id)})
        return enrollment

    async def list_for_student(self, student_id: UUID, *, active_only: bool = False) -> list[Enrollment]:
        return await self.enrollments.list_for_student(student_id, active_only=active_only)

    async def list_for_course(
        self,
        actor: Actor,
        course_id: UUID,
        *,
        active_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Enrollment], int, int]:
        """
        Enrollments of a course of the actor's institute.

        Returns:
            Tuple of (enrollments, total matching, active count)
        """
        institute_id = require_institute_member(actor)
        if await self.courses.get_for_institute(course_id, institute_id) is None:
            raise NotFoundError("Course not found or access denied")
        items, total = await self.enrollments.list_for_course(
            course_id, active_only=active_only, limit=limit, offset=offset
        )
        active = await self.enrollments.count_active_for_course(course_id)
        return items, total, active

    def _compute_expiry(
        self,
        pricing: CoursePricingInfo,
        passkey: Passkey,
        payment: Payment,
        now: datetime,
    ) -> datetime | None:
        match pricing.pricing_model:
            case PricingModel.FREE:
                return None
            case PricingModel.SUBSCRIPTION:
                # The months the quote charged for, not the course default.
                return add_months(now, payment.duration_months)
            case PricingModel.ONE_TIME | PricingModel.ALREADY_PAID:
                if pricing.access_duration_months:
                    return add_months(now, pricing.access_duration_months)
                if passkey.expires_at is None:
                    raise ValidationError("Passkey has no paid access window")
                return passkey.expires_at

    @staticmethod
    def _check_window(enrolled_at: datetime, expires_at: datetime | None) -> None:
        if expires_at is not None and expires_at <= enrolled_at:
            raise ValidationError(
                "Enrollment must expire after it starts",
                {"enrolled_at": enrolled_at.isoformat(), "expires_at": expires_at.isoformat()},
            )

    @staticmethod
    def _payment_method(pricing: CoursePricingInfo) -> PaymentMethod:
        match pricing.pricing_model:
            case PricingModel.FREE:
                return PaymentMethod.FREE
            case PricingModel.ALREADY_PAID:
                return PaymentMethod.MANUAL
            case _:
                return PaymentMethod.RAZORPAY
