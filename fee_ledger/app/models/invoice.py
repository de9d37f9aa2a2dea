"""
Invoice database models.

An invoice is an immutable, numbered snapshot of a fee obligation's ledger
at generation time. Payment references are copied into line rows so later
payment corrections never change an issued invoice.
"""

from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, Date, DateTime, Enum, ForeignKey,
    UniqueConstraint, CheckConstraint, DDL, event
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from fee_ledger.app.db.session import Base
from fee_ledger.app.models.billing_enums import InvoiceStatus, PaymentMethod

INVOICE_SEQUENCE_NAME = "invoice"


class Invoice(Base):
    """
    Invoice model.

    balance == total_amount - amount_paid always holds (DB check).
    NO updates after creation.
    """
    __tablename__ = "invoices"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    invoice_number = Column(String(32), nullable=False, unique=True, index=True)

    # Linkage
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    fee_id = Column(Integer, ForeignKey('fee_obligations.id'), nullable=False, index=True)

    # Snapshot financials (minor units)
    total_amount = Column(BigInteger, nullable=False)
    amount_paid = Column(BigInteger, nullable=False)
    balance = Column(BigInteger, nullable=False)

    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(Enum(InvoiceStatus), default=InvoiceStatus.ISSUED, nullable=False, index=True)
    notes = Column(Text, nullable=True)

    created_by_id = Column(Integer, ForeignKey('users.id'), nullable=False)

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", foreign_keys=[user_id], lazy="selectin")

    payment_lines = relationship(
        "InvoicePaymentLine",
        order_by="InvoicePaymentLine.position",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint('balance = total_amount - amount_paid', name='ck_invoices_balance'),
    )

    def __repr__(self):
        return f"<Invoice(id={self.id}, number='{self.invoice_number}', balance={self.balance})>"


class InvoicePaymentLine(Base):
    """A payment as it stood when the invoice was generated."""
    __tablename__ = "invoice_payment_lines"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    invoice_id = Column(Integer, ForeignKey('invoices.id', ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)

    payment_id = Column(Integer, ForeignKey('payment_records.id'), nullable=False)
    amount = Column(BigInteger, nullable=False)
    payment_date = Column(DateTime(timezone=True), nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    transaction_id = Column(String(255), nullable=True)

    __table_args__ = (
        UniqueConstraint('invoice_id', 'position', name='uq_invoice_payment_lines_position'),
    )

    def __repr__(self):
        return f"<InvoicePaymentLine(invoice_id={self.invoice_id}, payment_id={self.payment_id}, amount={self.amount})>"


class InvoiceSequence(Base):
    """
    Named counter for invoice numbers.

    Incremented with a single UPDATE ... RETURNING so concurrent
    generations never read the same value.
    """
    __tablename__ = "invoice_sequences"

    name = Column(String(50), primary_key=True)
    value = Column(BigInteger, nullable=False, default=0)

    def __repr__(self):
        return f"<InvoiceSequence(name='{self.name}', value={self.value})>"


event.listen(
    InvoiceSequence.__table__,
    "after_create",
    DDL(f"INSERT INTO invoice_sequences (name, value) VALUES ('{INVOICE_SEQUENCE_NAME}', 0)"),
)
