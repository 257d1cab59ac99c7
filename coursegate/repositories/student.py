"""
Student Repository

Provides database operations for Student and its owned passkeys.
"""

from uuid import UUID

from sqlalchemy import case, select, update

from coursegate.models.orm.student import Student, StudentPasskey
from coursegate.repositories.base import BaseRepository


class StudentRepository(BaseRepository[Student]):
    """Repository for Student model operations."""

    model = Student

    async def get_by_device(self, device_id: str) -> Student | None:
        """
        Get the student registered from a device.

        Args:
            device_id: Client device identifier

        Returns:
            Student or None if the device never registered
        """
        result = await self.session.execute(select(Student).where(Student.device_id == device_id))
        return result.scalar_one_or_none()

    async def get_owned(self, student_id: UUID, passkey_id: str) -> StudentPasskey | None:
        """Owned-passkey entry of a student for a code, if any."""
        result = await self.session.execute(
            select(StudentPasskey).where(
                StudentPasskey.student_id == student_id,
                StudentPasskey.passkey_id == passkey_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_owned(self, student_id: UUID) -> list[StudentPasskey]:
        """Owned passkeys of a student, in the order they were added."""
        result = await self.session.execute(
            select(StudentPasskey)
            .where(StudentPasskey.student_id == student_id)
            .order_by(StudentPasskey.added_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_active(self, student_id: UUID) -> StudentPasskey | None:
        """The currently active owned passkey of a student."""
        result = await self.session.execute(
            select(StudentPasskey)
            .where(
                StudentPasskey.student_id == student_id,
                StudentPasskey.is_active.is_(True),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def add_owned(self, entry: StudentPasskey) -> StudentPasskey:
        """Append an owned-passkey entry."""
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def switch_active(self, student_id: UUID, passkey_id: str) -> int:
        """
        Make one owned passkey active and every sibling inactive.

        Single UPDATE over all of the student's rows, so no reader ever sees
        zero or two active entries.

        Returns:
            Number of rows touched
        """
        result = await self.session.execute(
            update(StudentPasskey)
            .where(StudentPasskey.student_id == student_id)
            .values(
                is_active=case(
                    (StudentPasskey.passkey_id == passkey_id, True),
                    else_=False,
                )
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
