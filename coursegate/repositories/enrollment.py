"""
Enrollment Repository

Provides database operations for Enrollment model.
"""

from uuid import UUID

from sqlalchemy import func, select

from coursegate.models.orm.enrollment import Enrollment
from coursegate.repositories.base import BaseRepository


class EnrollmentRepository(BaseRepository[Enrollment]):
    """Repository for Enrollment model operations."""

    model = Enrollment

    async def get_for_student_course(self, student_id: UUID, course_id: UUID) -> Enrollment | None:
        """
        Get the enrollment of a student in a course.

        Args:
            student_id: Student UUID
            course_id: Course UUID

        Returns:
            Enrollment or None if the student never enrolled
        """
        result = await self.session.execute(
            select(Enrollment).where(
                Enrollment.student_id == student_id,
                Enrollment.course_id == course_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_active_for_passkey(self, passkey_id: str, course_id: UUID) -> Enrollment | None:
        """Latest active enrollment backed by a passkey code."""
        result = await self.session.execute(
            select(Enrollment)
            .where(
                Enrollment.passkey_id == passkey_id,
                Enrollment.course_id == course_id,
                Enrollment.is_active.is_(True),
            )
            .order_by(Enrollment.enrolled_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_for_student(self, student_id: UUID, *, active_only: bool = False) -> list[Enrollment]:
        """Enrollments of a student, newest first."""
        query = select(Enrollment).where(Enrollment.student_id == student_id)
        if active_only:
            query = query.where(Enrollment.is_active.is_(True))
        result = await self.session.execute(query.order_by(Enrollment.enrolled_at.desc()))
        return list(result.scalars().all())

    async def list_for_course(
        self,
        course_id: UUID,
        *,
        active_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Enrollment], int]:
        """Enrollments of a course, newest first, with total count."""
        filters = [Enrollment.course_id == course_id]
        if active_only:
            filters.append(Enrollment.is_active.is_(True))
        return await self.get_paginated(
            filters=filters,
            sort_by="enrolled_at",
            sort_dir="desc",
            limit=limit,
            offset=offset,
        )

    async def count_active_for_course(self, course_id: UUID) -> int:
        """Number of active enrollments in a course."""
        result = await self.session.execute(
            select(func.count(Enrollment.id)).where(
                Enrollment.course_id == course_id,
                Enrollment.is_active.is_(True),
            )
        )
        return result.scalar() or 0

