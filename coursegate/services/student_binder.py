"""
Student Identity Binder - device to student mapping.

Registers devices as students, attaches claimed passkeys to the student's
owned list and keeps exactly one of them active.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from coursegate.config import Settings, get_settings
from coursegate.core.auth import TokenClaims, issue_token
from coursegate.core.errors import ConflictError, NotFoundError, Unauthenticated, ValidationError
from coursegate.core.timeutils import utcnow
from coursegate.models.enums import ActorRole, PasskeyStatus
from coursegate.models.orm.passkey import Passkey
from coursegate.models.orm.student import Student, StudentPasskey
from coursegate.repositories.student import StudentRepository
from coursegate.services import passkey_codes
from coursegate.services.passkey_registry import PasskeyRegistry
from coursegate.services.passkey_state import effective_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimResult:
    student: Student
    entry: StudentPasskey
    passkey: Passkey


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    student: Student
    passkey: Passkey


class StudentBinder:
    """Service for student devices and their owned passkeys."""

    def __init__(
        self,
        db: AsyncSession,
        registry: PasskeyRegistry | None = None,
        settings: Settings | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.registry = registry or PasskeyRegistry(db, self.settings)
        self.students = StudentRepository(db)

    def _validate_code(self, passkey_id: str) -> str:
        return passkey_codes.validate_code(passkey_id, self.settings.passkey_code_length)

    async def register_device(
        self,
        device_id: str,
        name: str | None = None,
        email: str | None = None,
        phone_number: str | None = None,
    ) -> Student:
        """
        Get or create the student of a device.

        Profile fields are only filled in where the stored student has none.

        Raises:
            ValidationError: If device_id is empty
        """
        device_id = (device_id or "").strip()
        if not device_id:
            raise ValidationError("Device ID is required")

        student = await self.students.get_by_device(device_id)
        if student is None:
            student = await self.students.create(
                Student(device_id=device_id, name=name, email=email, phone_number=phone_number)
            )
            logger.info(f"Registered device {device_id}", extra={"student_id": str(student.id)})
            return student

        changed = False
        for attr, value in (("name", name), ("email", email), ("phone_number", phone_number)):
            if value and not getattr(student, attr):
                setattr(student, attr, value)
                changed = True
        if changed:
            await self.db.flush()
        return student

    async def claim_passkey(
        self,
        passkey_id: str,
        device_id: str,
        name: str | None = None,
        email: str | None = None,
        phone_number: str | None = None,
    ) -> ClaimResult:
        """
        Claim a passkey from a device and make it the active one.

        Raises:
            ValidationError: If the code or device is malformed
            NotFoundError: If the passkey does not exist
            ConflictError: If the passkey is held by another student or device
        """
        code = self._validate_code(passkey_id)
        student = await self.register_device(device_id, name, email, phone_number)
        passkey = await self.registry.claim(code, student.id, student.device_id)

        entry = await self.students.get_owned(student.id, code)
        if entry is None:
            await self.students.add_owned(
                StudentPasskey(
                    student_id=student.id,
                    passkey_id=code,
                    institute_id=passkey.institute_id,
                    course_id=passkey.course_id,
                    is_active=False,
                    added_at=utcnow(),
                    activated_at=passkey.activated_at,
                    expires_at=passkey.expires_at,
                )
            )
        entry = await self.switch_active_passkey(student.id, code)
        return ClaimResult(student=student, entry=entry, passkey=passkey)

    async def switch_active_passkey(self, student_id: UUID, target_passkey_id: str) -> StudentPasskey:
        """
        Make one owned passkey active and deactivate the rest in one UPDATE.

        Raises:
            NotFoundError: If the student does not own the target passkey
        """
        code = self._validate_code(target_passkey_id)
        if await self.students.get_owned(student_id, code) is None:
            raise NotFoundError("Passkey not found in student account")

        await self.students.switch_active(student_id, code)
        entry = await self.students.get_active(student_id)
        assert entry is not None
        logger.info(
            f"Student {student_id} switched active passkey to {code}",
            extra={"student_id": str(student_id), "passkey_id": code},
        )
        return entry

    async def get_active_passkey(self, student_id: UUID) -> StudentPasskey | None:
        return await self.students.get_active(student_id)

    async def list_owned(self, student_id: UUID) -> list[StudentPasskey]:
        return await self.students.list_owned(student_id)

    async def sync_entry(self, passkey: Passkey) -> StudentPasskey | None:
        """Copy the passkey's activation window onto its owned entry."""
        if passkey.student_id is None:
            return None
        entry = await self.students.get_owned(passkey.student_id, passkey.passkey_id)
        if entry is None:
            return None
        entry.activated_at = passkey.activated_at
        entry.expires_at = passkey.expires_at
        await self.db.flush()
        return entry

    async def login(self, passkey_id: str, device_id: str) -> LoginResult:
        """
        Log a student in with one of their passkeys from their device.

        The passkey becomes the active one and the login counts as an access.

        Raises:
            Unauthenticated: If the device, ownership or binding does not match
            ConflictError: If the passkey is revoked or expired
        """
        code = self._validate_code(passkey_id)
        student = await self.students.get_by_device((device_id or "").strip())
        if student is None or await self.students.get_owned(student.id, code) is None:
            raise Unauthenticated("Invalid passkey or device")

        passkey = await self.registry.get(code)
        if passkey.device_id != student.device_id:
            raise Unauthenticated("Invalid passkey or device")

        current = effective_status(passkey, utcnow())
        if current == PasskeyStatus.REVOKED:
            raise ConflictError("Passkey has been revoked", current_state=current.value)
        if current == PasskeyStatus.EXPIRED:
            raise ConflictError("Passkey has expired", current_state=current.value)

        await self.students.switch_active(student.id, code)
        await self.registry.track_access(code)

        token = issue_token(
            TokenClaims(
                subject_id=student.id,
                role=ActorRole.STUDENT,
                institute_id=passkey.institute_id,
                passkey_id=code,
                device_id=student.device_id,
            )
        )
        logger.info(
            f"Student {student.id} logged in with passkey {code}",
            extra={"student_id": str(student.id), "passkey_id": code},
        )
        return LoginResult(access_token=token, student=student, passkey=passkey)
