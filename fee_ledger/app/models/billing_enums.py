"""
Billing enumerations for fee obligations, payments and invoices.
"""

import enum


class FeeStatus(str, enum.Enum):
    """Fee obligation status, derived from the ledger aggregate."""
    PENDING = "pending"  # Nothing paid yet
    PARTIAL = "partial"  # Something paid, balance outstanding
    PAID = "paid"  # Paid in full (overpayment included)


class StatusSource(str, enum.Enum):
    """Where the current fee status came from."""
    DERIVED = "DERIVED"  # Computed from payments
    MANUAL_OVERRIDE = "MANUAL_OVERRIDE"  # Set by an admin with a reason


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    ONLINE = "online"
    OTHER = "other"


class InvoiceStatus(str, enum.Enum):
    """
    Invoice status enumeration.

    Generation only ever produces ISSUED or PAID; the rest are reserved
    for administrative transitions.
    """
    DRAFT = "draft"
    ISSUED = "issued"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
