"""
Fee Obligation database model.

What a subject owes for a course. One row per (subject, course).
"""

from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, Date, DateTime, Enum, ForeignKey,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from fee_ledger.app.db.session import Base
from fee_ledger.app.models.billing_enums import FeeStatus, StatusSource


class FeeObligation(Base):
    """
    Fee Obligation model.

    Amounts are integer minor units. `status` mirrors the ledger aggregate
    while `status_source` is DERIVED; an admin override switches the source
    to MANUAL_OVERRIDE and records who did it and why. The next ledger
    mutation reconciles it back to DERIVED.
    """
    __tablename__ = "fee_obligations"
    # Load server-side timestamps during flush, not lazily after commit.
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Parties
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)  # Subject
    course_id = Column(Integer, ForeignKey('courses.id'), nullable=False, index=True)

    # Financials
    amount = Column(BigInteger, nullable=False)
    due_date = Column(Date, nullable=False)
    description = Column(Text, nullable=False, default="")

    # Status
    status = Column(Enum(FeeStatus), default=FeeStatus.PENDING, nullable=False, index=True)
    status_source = Column(Enum(StatusSource), default=StatusSource.DERIVED, nullable=False)

    # Override trail (only set while status_source is MANUAL_OVERRIDE)
    override_reason = Column(String(500), nullable=True)
    overridden_by_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    overridden_at = Column(DateTime(timezone=True), nullable=True)

    created_by_id = Column(Integer, ForeignKey('users.id'), nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Display summaries for responses
    user = relationship("User", foreign_keys=[user_id], lazy="selectin")
    course = relationship("Course", lazy="selectin")

    __table_args__ = (
        UniqueConstraint('user_id', 'course_id', name='uq_fee_obligations_user_course'),
        CheckConstraint('amount > 0', name='ck_fee_obligations_amount_positive'),
    )

    def __repr__(self):
        return f"<FeeObligation(id={self.id}, user_id={self.user_id}, status='{self.status.value}', amount={self.amount})>"
