"""
Course and enrollment models consulted by the course directory.

Only existence and membership matter to billing.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from fee_ledger.app.db.session import Base


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    title = Column(String(200), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Course(id={self.id}, title='{self.title}')>"


class CourseEnrollment(Base):
    """A subject's membership in a course."""
    __tablename__ = "course_enrollments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    course_id = Column(Integer, ForeignKey('courses.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    enrolled_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('course_id', 'user_id', name='uq_course_enrollments_course_user'),
    )

    def __repr__(self):
        return f"<CourseEnrollment(course_id={self.course_id}, user_id={self.user_id})>"
