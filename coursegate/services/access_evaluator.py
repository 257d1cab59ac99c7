"""
Access Evaluator - decides whether course content may be served.

Checks run in a fixed order and stop at the first failure:

1. enrollment exists and is active
2. enrollment has not expired (an expired one is deactivated on the spot)
3. backing passkey is not revoked
4. the requesting device is the one the passkey is bound to
5. grant, and count the access on the passkey

Recording the access happens in a savepoint; if it fails the decision is
still returned.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from coursegate.core.errors import ValidationError
from coursegate.core.timeutils import utcnow
from coursegate.models.enums import PasskeyStatus
from coursegate.repositories.enrollment import EnrollmentRepository
from coursegate.repositories.passkey import PasskeyRepository
from coursegate.services.enrollment_ledger import EnrollmentLedger
from coursegate.services.passkey_codes import normalize_code

logger = logging.getLogger(__name__)


class AccessReason(str, Enum):
    GRANTED = "granted"
    NOT_ENROLLED = "not_enrolled"
    ENROLLMENT_INACTIVE = "enrollment_inactive"
    ENROLLMENT_EXPIRED = "enrollment_expired"
    PASSKEY_REVOKED = "passkey_revoked"
    DEVICE_MISMATCH = "device_mismatch"


@dataclass(frozen=True)
class AccessDecision:
    granted: bool
    reason: AccessReason
    enrollment_id: UUID | None = None
    passkey_id: str | None = None
    expires_at: datetime | None = None


class AccessEvaluator:
    """Service answering content access queries."""

    def __init__(self, db: AsyncSession, enrollment_ledger: EnrollmentLedger | None = None):
        self.db = db
        self.enrollments = EnrollmentRepository(db)
        self.passkeys = PasskeyRepository(db)
        self.enrollment_ledger = enrollment_ledger or EnrollmentLedger(db)

    async def has_access(
        self,
        course_id: UUID,
        *,
        student_id: UUID | None = None,
        passkey_id: str | None = None,
        device_id: str | None = None,
    ) -> bool:
        decision = await self.evaluate(
            course_id, student_id=student_id, passkey_id=passkey_id, device_id=device_id
        )
        return decision.granted

    async def evaluate(
        self,
        course_id: UUID,
        *,
        student_id: UUID | None = None,
        passkey_id: str | None = None,
        device_id: str | None = None,
    ) -> AccessDecision:
        """
        Decide access of a student (or the holder of a passkey) to a course.

        Args:
            course_id: Course whose content is requested
            student_id: Requesting student
            passkey_id: Passkey code, used to find the student when
                student_id is not given
            device_id: Requesting device, checked against the passkey binding

        Returns:
            AccessDecision with the first failing check as reason

        Raises:
            ValidationError: If neither student_id nor passkey_id is given
        """
        if student_id is None:
            if not passkey_id:
                raise ValidationError("student_id or passkey_id is required")
            holder = await self.passkeys.get_by_code(normalize_code(passkey_id))
            if holder is None or holder.student_id is None:
                return AccessDecision(granted=False, reason=AccessReason.NOT_ENROLLED)
            student_id = holder.student_id

        now = utcnow()

        # 1. Enrollment
        enrollment = await self.enrollments.get_for_student_course(student_id, course_id)
        if enrollment is None:
            return AccessDecision(granted=False, reason=AccessReason.NOT_ENROLLED)
        if not enrollment.is_active:
            return self._deny(AccessReason.ENROLLMENT_INACTIVE, enrollment)

        # 2. Enrollment expiry
        if enrollment.expires_at is not None and enrollment.expires_at <= now:
            await self.enrollment_ledger.mark_expired(enrollment, now)
            return self._deny(AccessReason.ENROLLMENT_EXPIRED, enrollment)

        # 3. Revocation overrides a valid enrollment
        passkey = await self.passkeys.get_by_code(enrollment.passkey_id)
        if passkey is None or passkey.status == PasskeyStatus.REVOKED.value:
            return self._deny(AccessReason.PASSKEY_REVOKED, enrollment)

        # 4. Device exclusivity
        if device_id is not None and passkey.device_id is not None and passkey.device_id != device_id:
            logger.warning(
                f"Access to course {course_id} from unbound device",
                extra={"passkey_id": passkey.passkey_id, "device_id": device_id},
            )
            return self._deny(AccessReason.DEVICE_MISMATCH, enrollment)

        # 5. Grant
        await self._record_access(passkey.passkey_id, now)
        return AccessDecision(
            granted=True,
            reason=AccessReason.GRANTED,
            enrollment_id=enrollment.id,
            passkey_id=enrollment.passkey_id,
            expires_at=enrollment.expires_at,
        )

    async def _record_access(self, passkey_id: str, now: datetime) -> None:
        try:
            async with self.db.begin_nested():
                await self.passkeys.record_access(passkey_id, now)
        except SQLAlchemyError as e:
            logger.warning(
                f"Failed to record access for passkey {passkey_id}: {e}",
                extra={"passkey_id": passkey_id},
            )

    @staticmethod
    def _deny(reason: AccessReason, enrollment) -> AccessDecision:
        return AccessDecision(
            granted=False,
            reason=reason,
            enrollment_id=enrollment.id,
            passkey_id=enrollment.passkey_id,
            expires_at=enrollment.expires_at,
        )
