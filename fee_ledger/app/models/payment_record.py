"""
Payment Record database model.

One payment event applied against a fee obligation.
"""

from sqlalchemy import Column, Integer, BigInteger, String, Text, DateTime, Enum, ForeignKey, CheckConstraint
from sqlalchemy.sql import func
from fee_ledger.app.db.session import Base
from fee_ledger.app.models.billing_enums import PaymentMethod


class PaymentRecord(Base):
    """
    Payment Record model.

    Gateway settlement happens before a record is created. Corrections and
    deletions are admin-only; deletion is soft (`deleted_at`) so invoices
    issued earlier can still point at the row.
    """
    __tablename__ = "payment_records"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Linkage
    fee_id = Column(Integer, ForeignKey('fee_obligations.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    # Payment details
    amount = Column(BigInteger, nullable=False)
    payment_date = Column(DateTime(timezone=True), nullable=False)
    payment_method = Column(Enum(PaymentMethod), default=PaymentMethod.CASH, nullable=False)
    transaction_id = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    recorded_by_id = Column(Integer, ForeignKey('users.id'), nullable=False)

    # Soft delete
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)
    deleted_by_id = Column(Integer, ForeignKey('users.id'), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_payment_records_amount_positive'),
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self):
        return f"<PaymentRecord(id={self.id}, fee_id={self.fee_id}, amount={self.amount})>"
