"""
Passkey Registry - passkey lifecycle business logic.

Owns every mutation of a Passkey: generation, claim, payment-driven
transitions, renewal, revocation and expiry reconciliation. Each transition
appends a status history entry.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import assert_never
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from coursegate.config import Settings, get_settings
from coursegate.core.auth import Actor, actor_id, actor_role, require_institute_member, require_principal
from coursegate.core.errors import (
    AuthorizationError,
    CoursegateError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from coursegate.core.timeutils import add_months, utcnow
from coursegate.models.enums import (
    ActorRole,
    FeePayer,
    PasskeyStatus,
    PaymentStatus,
    PaymentType,
    PlatformFeeStatus,
)
from coursegate.models.orm.passkey import Passkey, PasskeyStatusEvent, PlatformFeePayment
from coursegate.models.orm.payment import Payment
from coursegate.repositories.course import CourseRepository
from coursegate.repositories.passkey import PasskeyRepository
from coursegate.services import passkey_codes
from coursegate.services.passkey_state import (
    PAYABLE_STATUSES,
    effective_status,
    is_usable,
    stored_status,
)

logger = logging.getLogger(__name__)

ALLOWED_DURATIONS = (1, 12)
MAX_CODE_ATTEMPTS = 10
SYSTEM_ROLE = "SYSTEM"


class PasskeyRegistry:
    """Service for passkey lifecycle operations."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings | None = None,
        code_factory: Callable[[], str] | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.passkeys = PasskeyRepository(db)
        self.courses = CourseRepository(db)
        self._code_factory = code_factory or (
            lambda: passkey_codes.generate_code(self.settings.passkey_code_length)
        )

    # ========================================================================
    # Lookups
    # ========================================================================

    async def get(self, passkey_id: str) -> Passkey:
        """
        Get a passkey by code.

        Raises:
            ValidationError: If the code is malformed
            NotFoundError: If no passkey has this code
        """
        code = passkey_codes.validate_code(passkey_id, self.settings.passkey_code_length)
        passkey = await self.passkeys.get_by_code(code)
        if passkey is None:
            raise NotFoundError("Passkey not found")
        return passkey

    async def get_for_institute(self, actor: Actor, passkey_id: str) -> Passkey:
        """Get a passkey within the actor's institute; foreign ones read as missing."""
        institute_id = require_institute_member(actor)
        passkey = await self.get(passkey_id)
        if passkey.institute_id != institute_id:
            raise NotFoundError("Passkey not found")
        return passkey

    async def list_for_institute(
        self,
        actor: Actor,
        *,
        status: PasskeyStatus | None = None,
        course_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Passkey], int]:
        institute_id = require_institute_member(actor)
        return await self.passkeys.list_for_institute(
            institute_id, status=status, course_id=course_id, limit=limit, offset=offset
        )

    async def history(self, passkey: Passkey) -> list[PasskeyStatusEvent]:
        return await self.passkeys.get_history(passkey.id)

    async def validate_for_device(self, passkey_id: str, device_id: str) -> Passkey:
        """
        Check that a passkey is usable right now from a device.

        Raises:
            NotFoundError: If the passkey does not exist
            ConflictError: If it is not active with time left
            AuthorizationError: If it is bound to another device
        """
        passkey = await self.get(passkey_id)
        now = utcnow()
        if not is_usable(passkey, now):
            raise ConflictError(
                "Passkey is not active",
                current_state=effective_status(passkey, now).value,
            )
        if passkey.device_id != device_id:
            raise AuthorizationError("Passkey is bound to another device")
        return passkey

    # ========================================================================
    # Generation
    # ========================================================================

    async def generate(
        self,
        actor: Actor,
        course_id: UUID,
        count: int,
        duration_months: int = 1,
    ) -> list[Passkey]:
        """
        Generate a batch of unclaimed passkeys for a course.

        Args:
            actor: Must be the principal of the institute owning the course
            course_id: Course the passkeys grant access to
            count: Batch size, 1 to max_passkey_generation_count
            duration_months: Paid window per passkey, 1 or 12

        Returns:
            The new passkeys, all PENDING

        Raises:
            AuthorizationError: If the actor is not an institute principal
            ValidationError: If count or duration is out of range
            NotFoundError: If the course is missing or owned by another institute
        """
        principal = require_principal(actor)

        max_count = self.settings.max_passkey_generation_count
        if not 1 <= count <= max_count:
            raise ValidationError(
                f"Count must be between 1 and {max_count}",
                {"count": count},
            )
        if duration_months not in ALLOWED_DURATIONS:
            raise ValidationError(
                "Duration must be 1 or 12 months",
                {"duration_months": duration_months},
            )

        course = await self.courses.get_for_institute(course_id, principal.institute_id)
        if course is None:
            raise NotFoundError("Course not found or access denied")

        codes = await self._allocate_codes(count)
        now = utcnow()

        passkeys = [
            Passkey(
                passkey_id=code,
                institute_id=principal.institute_id,
                course_id=course.id,
                generated_by=principal.user_id,
                status=PasskeyStatus.PENDING.value,
                duration_months=duration_months,
                generated_at=now,
                next_platform_fee_due=now,
                platform_fee_status=PlatformFeeStatus.PENDING.value,
            )
            for code in codes
        ]
        self.db.add_all(passkeys)
        await self.db.flush()

        for passkey in passkeys:
            await self.passkeys.add_status_event(
                passkey,
                PasskeyStatus.PENDING,
                changed_at=now,
                changed_by=principal.user_id,
                changed_by_role=ActorRole.PRINCIPAL.value,
                reason="Generated",
            )

        logger.info(
            f"Generated {count} passkeys for course {course.id}",
            extra={
                "institute_id": str(principal.institute_id),
                "course_id": str(course.id),
                "count": count,
                "duration_months": duration_months,
            },
        )
        return passkeys

    async def _allocate_codes(self, count: int) -> list[str]:
        """Draw `count` codes unique within the batch and against the registry."""
        codes: list[str] = []
        for _ in range(MAX_CODE_ATTEMPTS):
            candidates: list[str] = []
            while len(candidates) < count - len(codes):
                code = self._code_factory()
                if code not in codes and code not in candidates:
                    candidates.append(code)
            taken = await self.passkeys.existing_codes(candidates)
            if taken:
                logger.debug(f"Regenerating {len(taken)} colliding passkey codes")
            codes.extend(code for code in candidates if code not in taken)
            if len(codes) == count:
                return codes
        raise CoursegateError("Could not allocate unique passkey codes")

    # ========================================================================
    # Claim
    # ========================================================================

    async def claim(self, passkey_id: str, student_id: UUID, device_id: str) -> Passkey:
        """
        Bind an unclaimed passkey to a student and device.

        Claiming again with the same student and device returns the passkey
        unchanged.

        Raises:
            ValidationError: If the code is malformed or device_id is empty
            NotFoundError: If the passkey does not exist
            ConflictError: If another student or device holds it, or it is
                no longer claimable
        """
        if not device_id:
            raise ValidationError("Device ID is required")
        passkey = await self.get(passkey_id)
        code = passkey.passkey_id
        now = utcnow()

        if await self.passkeys.claim(code, student_id, device_id, now):
            passkey = await self.passkeys.get_by_code(code, fresh=True)
            assert passkey is not None
            await self.passkeys.add_status_event(
                passkey,
                PasskeyStatus.STUDENT_ASSIGNED,
                changed_at=now,
                changed_by=student_id,
                changed_by_role=ActorRole.STUDENT.value,
                reason="Claimed by student",
            )
            logger.info(
                f"Passkey {code} claimed",
                extra={"passkey_id": code, "student_id": str(student_id), "device_id": device_id},
            )
            return passkey

        passkey = await self.passkeys.get_by_code(code, fresh=True)
        assert passkey is not None
        current = effective_status(passkey, now)

        if (
            passkey.student_id == student_id
            and passkey.device_id == device_id
            and current != PasskeyStatus.REVOKED
        ):
            return passkey

        if current == PasskeyStatus.REVOKED:
            message = "Passkey has been revoked"
        elif passkey.device_id is not None and passkey.device_id != device_id:
            message = "Passkey is bound to another device"
        else:
            message = "Passkey already claimed"

        logger.warning(
            f"Rejected claim of passkey {code}: {message}",
            extra={"passkey_id": code, "device_id": device_id, "current_state": current.value},
        )
        raise ConflictError(message, current_state=current.value)

    # ========================================================================
    # Payment-driven transitions
    # ========================================================================

    async def mark_payment_pending(self, passkey_id: str, payment_type: PaymentType) -> Passkey:
        """
        Note that a payment order was opened for a passkey.

        STUDENT_ASSIGNED moves to PLATFORM_FEE_PENDING for platform-fee and
        combined orders; other payable states are left as they are.

        Raises:
            ConflictError: If the passkey cannot take a payment now
        """
        passkey = await self.get(passkey_id)
        now = utcnow()
        current = effective_status(passkey, now)

        payable = set(PAYABLE_STATUSES)
        if payment_type == PaymentType.COURSE_FEE:
            payable.add(PasskeyStatus.PLATFORM_FEE_PAID)
        if current not in payable:
            raise ConflictError("Passkey cannot accept a payment", current_state=current.value)

        if current == PasskeyStatus.STUDENT_ASSIGNED and payment_type in (
            PaymentType.PLATFORM_FEE,
            PaymentType.COMBINED,
        ):
            await self._transition(
                passkey, PasskeyStatus.PLATFORM_FEE_PENDING, now, reason="Payment order created"
            )
        return passkey

    async def record_payment(
        self, passkey_id: str, payment: Payment, payment_type: PaymentType
    ) -> Passkey:
        """
        Apply a completed payment to a passkey.

        Sets activated_at (if unset) and expires_at (if unset), then moves the
        passkey according to what the payment settles.

        Raises:
            ValidationError: If the payment is not COMPLETED for this passkey
            ConflictError: If the payment was already applied, or the passkey
                is in a state that cannot take it
        """
        passkey = await self.get(passkey_id)
        self._check_payment(passkey, payment)
        now = utcnow()
        current = effective_status(passkey, now)

        if passkey.payment_id == payment.id:
            raise ConflictError("Payment already applied to this passkey", current_state=current.value)

        allowed = set(PAYABLE_STATUSES)
        if payment_type == PaymentType.COURSE_FEE:
            allowed.add(PasskeyStatus.PLATFORM_FEE_PAID)
        if current not in allowed:
            raise ConflictError(
                f"Cannot record {payment_type.value} payment",
                current_state=current.value,
            )

        if passkey.activated_at is None:
            passkey.activated_at = now
        if passkey.expires_at is None:
            passkey.expires_at = add_months(passkey.activated_at, passkey.duration_months)
        passkey.payment_id = payment.id

        if payment_type == PaymentType.PLATFORM_FEE:
            self._settle_platform_fee(passkey, payment, now)
            target = (
                PasskeyStatus.FULLY_ACTIVE
                if passkey.has_course_access
                else PasskeyStatus.PLATFORM_FEE_PAID
            )
        elif payment_type == PaymentType.COURSE_FEE:
            passkey.has_course_access = True
            target = (
                PasskeyStatus.FULLY_ACTIVE
                if passkey.platform_fee_status == PlatformFeeStatus.PAID.value
                else PasskeyStatus.COURSE_ACCESS_PENDING
            )
        elif payment_type == PaymentType.COMBINED:
            self._settle_platform_fee(passkey, payment, now)
            passkey.has_course_access = True
            target = PasskeyStatus.FULLY_ACTIVE
        else:
            assert_never(payment_type)

        await self._transition(
            passkey,
            target,
            now,
            changed_by=payment.student_id,
            changed_by_role=ActorRole.STUDENT.value if payment.student_id else SYSTEM_ROLE,
            reason=f"{payment_type.value} payment {payment.order_id} completed",
        )
        return passkey

    async def renew(self, passkey_id: str, payment: Payment, duration_months: int) -> Passkey:
        """
        Renew an expired passkey with a new completed payment.

        The new window starts now. The passkey moves to ACTIVE and its
        renewal_count goes up by one.

        Raises:
            ValidationError: If the duration is not 1 or 12, or the payment
                is not COMPLETED for this passkey
            ConflictError: If the passkey is not expired, or the payment is
                the one already applied
        """
        if duration_months not in ALLOWED_DURATIONS:
            raise ValidationError(
                "Duration must be 1 or 12 months",
                {"duration_months": duration_months},
            )
        passkey = await self.get(passkey_id)
        self._check_payment(passkey, payment)
        now = utcnow()
        current = effective_status(passkey, now)

        if current != PasskeyStatus.EXPIRED:
            raise ConflictError("Only expired passkeys can be renewed", current_state=current.value)
        if passkey.payment_id == payment.id:
            raise ConflictError("Renewal requires a new payment", current_state=current.value)

        if stored_status(passkey) != PasskeyStatus.EXPIRED:
            await self._transition(passkey, PasskeyStatus.EXPIRED, now, reason="Expiry window passed")
            now = utcnow()

        passkey.activated_at = now
        passkey.expires_at = add_months(now, duration_months)
        passkey.duration_months = duration_months
        passkey.payment_id = payment.id
        passkey.renewal_count += 1
        passkey.has_course_access = True
        self._settle_platform_fee(passkey, payment, now)

        await self._transition(
            passkey,
            PasskeyStatus.ACTIVE,
            now,
            changed_by=payment.student_id,
            changed_by_role=ActorRole.STUDENT.value if payment.student_id else SYSTEM_ROLE,
            reason=f"Renewed for {duration_months} months",
        )
        return passkey

    # ========================================================================
    # Revocation and expiry
    # ========================================================================

    async def revoke(self, actor: Actor, passkey_id: str, reason: str | None = None) -> Passkey:
        """
        Revoke a passkey. Irreversible.

        Raises:
            AuthorizationError: If the actor is not the principal of the
                owning institute
            NotFoundError: If the passkey does not exist
            ConflictError: If it is already revoked
        """
        principal = require_principal(actor)
        passkey = await self.get(passkey_id)
        if passkey.institute_id != principal.institute_id:
            raise AuthorizationError("Passkey belongs to another institute")

        now = utcnow()
        if stored_status(passkey) == PasskeyStatus.REVOKED:
            raise ConflictError("Passkey already revoked", current_state=PasskeyStatus.REVOKED.value)

        await self._transition(
            passkey,
            PasskeyStatus.REVOKED,
            now,
            changed_by=actor_id(actor),
            changed_by_role=actor_role(actor).value,
            reason=reason or "Revoked by institute",
        )
        return passkey

    async def reconcile_expired(self, now: datetime | None = None) -> int:
        """
        Persist EXPIRED for passkeys whose window has passed.

        Returns:
            Number of passkeys rewritten
        """
        now = now or utcnow()
        expired = 0
        for passkey in await self.passkeys.list_lapsed(now):
            if await self.passkeys.mark_expired_if_lapsed(passkey.id, now):
                passkey.status = PasskeyStatus.EXPIRED.value
                await self.passkeys.add_status_event(
                    passkey,
                    PasskeyStatus.EXPIRED,
                    changed_at=now,
                    reason="Expiry window passed",
                )
                expired += 1
        if expired:
            logger.info(f"Reconciled {expired} expired passkeys")
        return expired

    async def flag_overdue_platform_fees(self, now: datetime | None = None) -> int:
        """Mark claimed passkeys whose platform fee period lapsed as OVERDUE."""
        now = now or utcnow()
        overdue = await self.passkeys.list_fee_overdue(now)
        for passkey in overdue:
            passkey.platform_fee_status = PlatformFeeStatus.OVERDUE.value
        await self.db.flush()
        if overdue:
            logger.info(f"Flagged {len(overdue)} passkeys with overdue platform fees")
        return len(overdue)

    async def track_access(self, passkey_id: str) -> None:
        """Count one successful access of a passkey."""
        await self.passkeys.record_access(passkey_id, utcnow())

    # ========================================================================
    # Helpers
    # ========================================================================

    @staticmethod
    def _check_payment(passkey: Passkey, payment: Payment) -> None:
        if payment.status != PaymentStatus.COMPLETED.value:
            raise ValidationError("Payment is not completed", {"order_id": payment.order_id})
        if payment.passkey_id != passkey.passkey_id:
            raise ValidationError(
                "Payment does not belong to this passkey", {"order_id": payment.order_id}
            )

    def _settle_platform_fee(self, passkey: Passkey, payment: Payment, now: datetime) -> None:
        period_end = add_months(now, payment.duration_months)
        self.db.add(
            PlatformFeePayment(
                passkey_pk=passkey.id,
                payment_id=payment.id,
                gateway_payment_id=payment.gateway_payment_id,
                amount=payment.platform_fee,
                paid_by=FeePayer.STUDENT.value,
                month=now.month,
                year=now.year,
                paid_at=now,
                expires_at=period_end,
            )
        )
        passkey.platform_fee_status = PlatformFeeStatus.PAID.value
        passkey.next_platform_fee_due = period_end

    async def _transition(
        self,
        passkey: Passkey,
        target: PasskeyStatus,
        now: datetime,
        *,
        changed_by: UUID | None = None,
        changed_by_role: str = SYSTEM_ROLE,
        reason: str | None = None,
    ) -> None:
        previous = passkey.status
        passkey.status = target.value
        await self.passkeys.add_status_event(
            passkey,
            target,
            changed_at=now,
            changed_by=changed_by,
            changed_by_role=changed_by_role,
            reason=reason,
        )
        logger.info(
            f"Passkey {passkey.passkey_id} {previous} -> {target.value}",
            extra={
                "passkey_id": passkey.passkey_id,
                "from_status": previous,
                "to_status": target.value,
                "reason": reason,
            },
        )
