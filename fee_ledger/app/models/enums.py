"""
User roles enumeration.

Defines the role types known to the fee ledger.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Manages fees, records payments and issues invoices
        STUDENT: Subject of fee obligations; may read only their own records
    """
    ADMIN = "ADMIN"
    STUDENT = "STUDENT"
