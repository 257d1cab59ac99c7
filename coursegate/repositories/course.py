"""
Course Repository

Read-only lookups of courses and their pricing.
"""

from uuid import UUID

from sqlalchemy import select

from coursegate.models.orm.course import Course, CoursePricing
from coursegate.repositories.base import BaseRepository


class CourseRepository(BaseRepository[Course]):
    """Repository for Course model operations."""

    model = Course

    async def get_for_institute(self, course_id: UUID, institute_id: UUID) -> Course | None:
        """
        Get a course within institute scope.

        Args:
            course_id: Course UUID
            institute_id: Institute UUID

        Returns:
            Course if found and owned by the institute, None otherwise
        """
        result = await self.session.execute(
            select(Course).where(
                Course.id == course_id,
                Course.institute_id == institute_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_pricing(self, course_id: UUID) -> CoursePricing | None:
        """Get the active pricing row of a course."""
        result = await self.session.execute(
            select(CoursePricing).where(
                CoursePricing.course_id == course_id,
                CoursePricing.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()
