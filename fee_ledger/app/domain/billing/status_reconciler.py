"""
Status Reconciler.

Pure mapping from (amount owed, amount paid) to a fee status, plus the
tagged view of where an obligation's current status came from.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from fee_ledger.app.models.billing_enums import FeeStatus, StatusSource


def derive_status(amount_owed: int, amount_paid: int) -> FeeStatus:
    """
    Derive the fee status from the ledger aggregate.

    Overpayment saturates at PAID; no credit is tracked for the surplus.
    """
    if amount_paid <= 0:
        return FeeStatus.PENDING
    if amount_paid < amount_owed:
        return FeeStatus.PARTIAL
    return FeeStatus.PAID


@dataclass(frozen=True)
class Derived:
    status: FeeStatus

    source = StatusSource.DERIVED


@dataclass(frozen=True)
class ManualOverride:
    status: FeeStatus
    reason: str
    overridden_by: int
    overridden_at: Optional[datetime] = None

    source = StatusSource.MANUAL_OVERRIDE


ObligationStatus = Union[Derived, ManualOverride]


def status_view(obligation) -> ObligationStatus:
    """Read an obligation's status as the tagged variant that is active."""
    if obligation.status_source == StatusSource.MANUAL_OVERRIDE:
        return ManualOverride(
            status=obligation.status,
            reason=obligation.override_reason,
            overridden_by=obligation.overridden_by_id,
            overridden_at=obligation.overridden_at,
        )
    return Derived(status=obligation.status)


def apply_derived(obligation, amount_paid: int) -> FeeStatus:
    """
    Install the derived variant on an obligation in place.

    Clears any manual override. Returns the new status.
    """
    new_status = derive_status(obligation.amount, amount_paid)
    obligation.status = new_status
    obligation.status_source = StatusSource.DERIVED
    obligation.override_reason = None
    obligation.overridden_by_id = None
    obligation.overridden_at = None
    return new_status


def apply_override(obligation, status: FeeStatus, reason: str, admin_id: int, at: datetime) -> ManualOverride:
    """Install the manual override variant on an obligation in place."""
    obligation.status = status
    obligation.status_source = StatusSource.MANUAL_OVERRIDE
    obligation.override_reason = reason
    obligation.overridden_by_id = admin_id
    obligation.overridden_at = at
    return status_view(obligation)
