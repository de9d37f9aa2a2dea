"""
Course directory collaborator.

Resolves course existence and enrollment membership. Billing consults it
only as a precondition when creating a fee obligation.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from fee_ledger.app.models.course import Course, CourseEnrollment
from fee_ledger.app.models.user import User


class CourseDirectory:

    @staticmethod
    async def get_course(db: AsyncSession, course_id: int) -> Course | None:
        return await db.get(Course, course_id)

    @staticmethod
    async def get_subject(db: AsyncSession, user_id: int) -> User | None:
        return await db.get(User, user_id)

    @staticmethod
    async def is_enrolled(db: AsyncSession, user_id: int, course_id: int) -> bool:
        """True if the subject currently belongs to the course."""
        result = await db.execute(
            select(CourseEnrollment.id).where(
                CourseEnrollment.course_id == course_id,
                CourseEnrollment.user_id == user_id
            )
        )
        return result.first() is not None
