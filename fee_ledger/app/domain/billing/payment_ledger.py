"""
Payment Ledger (Domain Logic).

Appends payment records against fee obligations and keeps each
obligation's status equal to the reconciler's output for its aggregate.
Every mutation runs as one locked unit:

1. Lock the obligation (redis lock + row lock)
2. Write the payment change
3. Recompute the aggregate with SQL SUM
4. Write the derived status
5. Commit, then release the lock
"""

import logging
from datetime import datetime
from typing import Optional, List, Tuple, Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, desc

from fee_ledger.app.core.exceptions import ValidationError, ResourceNotFoundError
from fee_ledger.app.domain.billing.obligation_registry import FeeObligationRegistry
from fee_ledger.app.domain.billing.status_reconciler import apply_derived
from fee_ledger.app.domain.billing.unit_of_work import locked_ledger_unit, utcnow
from fee_ledger.app.models.billing_enums import FeeStatus, PaymentMethod
from fee_ledger.app.models.fee_obligation import FeeObligation
from fee_ledger.app.models.payment_record import PaymentRecord
from fee_ledger.app.services.audit import log_event, AuditAction

logger = logging.getLogger("fee_ledger.payments")

PAYMENT_UPDATABLE_FIELDS = ("amount", "payment_method", "payment_date", "transaction_id", "notes")


def _coerce_method(method) -> PaymentMethod:
    if method is None:
        return PaymentMethod.CASH
    try:
        return PaymentMethod(method)
    except ValueError:
        allowed = ", ".join(m.value for m in PaymentMethod)
        raise ValidationError(f"Invalid payment method '{method}'. Allowed: {allowed}")


def _require_positive(amount: Optional[int]) -> None:
    if amount is None or amount <= 0:
        raise ValidationError("Amount must be greater than zero", details={"amount": amount})


class PaymentLedger:

    @staticmethod
    async def current_aggregate(db: AsyncSession, fee_id: int) -> int:
        """
        Sum of all non-deleted payment amounts for an obligation.

        Integer minor units, 0 when nothing has been paid.
        """
        result = await db.execute(
            select(func.coalesce(func.sum(PaymentRecord.amount), 0)).where(
                PaymentRecord.fee_id == fee_id,
                PaymentRecord.deleted_at.is_(None)
            )
        )
        return int(result.scalar_one())

    @staticmethod
    async def reconcile(db: AsyncSession, obligation: FeeObligation) -> FeeStatus:
        """
        Recompute and write the obligation's derived status.

        Caller must hold the obligation lock and own the transaction. Any
        manual override is replaced by the derived value.
        """
        await db.flush()
        aggregate = await PaymentLedger.current_aggregate(db, obligation.id)
        previous = obligation.status
        new_status = apply_derived(obligation, aggregate)
        obligation.updated_at = utcnow()

        if previous != new_status:
            logger.info(
                "Fee obligation %s reconciled %s -> %s (paid %s of %s)",
                obligation.id, previous.value, new_status.value, aggregate, obligation.amount
            )
        return new_status

    @staticmethod
    async def reconcile_obligation(
        db: AsyncSession,
        fee_id: int,
        actor_id: int,
        actor_username: Optional[str] = None
    ) -> FeeObligation:
        """Admin action: drop a manual override and restore the derived status."""
        async with locked_ledger_unit(db, fee_id):
            obligation = await FeeObligationRegistry.get_obligation(db, fee_id, for_update=True)
            previous_source = obligation.status_source
            previous_status = obligation.status
            await PaymentLedger.reconcile(db, obligation)

            await log_event(
                db=db,
                action=AuditAction.FEE_STATUS_RECONCILED,
                actor_id=actor_id,
                actor_username=actor_username,
                target_user_id=obligation.user_id,
                entity_type="fee",
                entity_id=obligation.id,
                metadata={
                    "from_status": previous_status.value,
                    "from_source": previous_source.value,
                    "to_status": obligation.status.value
                }
            )

        return obligation

    @staticmethod
    async def record_payment(
        db: AsyncSession,
        fee_id: int,
        amount: int,
        recorded_by: int,
        payment_method: Optional[PaymentMethod] = None,
        payment_date: Optional[datetime] = None,
        transaction_id: Optional[str] = None,
        notes: Optional[str] = None,
        actor_username: Optional[str] = None
    ) -> Tuple[PaymentRecord, FeeObligation]:
        """
        Record a payment and reconcile the obligation atomically.

        Raises:
            ValidationError: amount <= 0 or unknown method
            ResourceNotFoundError: obligation missing

        Returns:
            (payment, obligation) with the obligation's status already updated
        """
        _require_positive(amount)
        method = _coerce_method(payment_method)

        async with locked_ledger_unit(db, fee_id):
            obligation = await FeeObligationRegistry.get_obligation(db, fee_id, for_update=True)

            payment = PaymentRecord(
                fee_id=obligation.id,
                user_id=obligation.user_id,
                amount=amount,
                payment_method=method,
                payment_date=payment_date or utcnow(),
                transaction_id=transaction_id,
                notes=notes,
                recorded_by_id=recorded_by
            )
            db.add(payment)
            await db.flush()

            await PaymentLedger.reconcile(db, obligation)

            await log_event(
                db=db,
                action=AuditAction.PAYMENT_RECORDED,
                actor_id=recorded_by,
                actor_username=actor_username,
                target_user_id=obligation.user_id,
                entity_type="payment",
                entity_id=payment.id,
                metadata={"fee_id": fee_id, "amount": amount, "method": method.value}
            )

        logger.info(
            "Payment %s of %s recorded on fee obligation %s, status now %s",
            payment.id, amount, fee_id, obligation.status.value
        )
        return payment, obligation

    @staticmethod
    async def get_payment(db: AsyncSession, payment_id: int) -> PaymentRecord:
        """
        Raises:
            ResourceNotFoundError: missing or deleted payment
        """
        payment = await db.get(PaymentRecord, payment_id)
        if payment is None or payment.is_deleted:
            raise ResourceNotFoundError("Payment", payment_id)
        return payment

    @staticmethod
    async def update_payment(
        db: AsyncSession,
        payment_id: int,
        changes: Dict[str, Any],
        updated_by: int,
        actor_username: Optional[str] = None
    ) -> Tuple[PaymentRecord, FeeObligation]:
        """
        Correct a payment (admin action) and reconcile its obligation.

        Only PAYMENT_UPDATABLE_FIELDS are applied; None values are ignored.
        """
        changes = {k: v for k, v in changes.items() if k in PAYMENT_UPDATABLE_FIELDS and v is not None}
        if "amount" in changes:
            _require_positive(changes["amount"])
        if "payment_method" in changes:
            changes["payment_method"] = _coerce_method(changes["payment_method"])

        payment = await PaymentLedger.get_payment(db, payment_id)
        fee_id = payment.fee_id

        async with locked_ledger_unit(db, fee_id):
            # Re-read under the lock; a concurrent delete may have landed.
            payment = await PaymentLedger._get_payment_for_update(db, payment_id)
            obligation = await FeeObligationRegistry.get_obligation(db, fee_id, for_update=True)

            audit_changes = {}
            for field, value in changes.items():
                old = getattr(payment, field)
                if old != value:
                    audit_changes[field] = {"from": _jsonable(old), "to": _jsonable(value)}
                    setattr(payment, field, value)

            payment.updated_at = utcnow()
            await PaymentLedger.reconcile(db, obligation)

            await log_event(
                db=db,
                action=AuditAction.PAYMENT_UPDATED,
                actor_id=updated_by,
                actor_username=actor_username,
                target_user_id=obligation.user_id,
                entity_type="payment",
                entity_id=payment.id,
                metadata={"fee_id": fee_id, "changes": audit_changes}
            )

        logger.info("Payment %s updated (%s), fee obligation %s now %s",
                    payment_id, ", ".join(sorted(audit_changes)) or "no changes", fee_id, obligation.status.value)
        return payment, obligation

    @staticmethod
    async def delete_payment(
        db: AsyncSession,
        payment_id: int,
        deleted_by: int,
        actor_username: Optional[str] = None
    ) -> FeeObligation:
        """
        Remove a payment from the ledger (admin action).

        The row is kept with deleted_at set so invoices issued earlier still
        resolve it; it no longer counts toward the aggregate.
        """
        payment = await PaymentLedger.get_payment(db, payment_id)
        fee_id = payment.fee_id

        async with locked_ledger_unit(db, fee_id):
            payment = await PaymentLedger._get_payment_for_update(db, payment_id)
            obligation = await FeeObligationRegistry.get_obligation(db, fee_id, for_update=True)

            payment.deleted_at = utcnow()
            payment.deleted_by_id = deleted_by
            await PaymentLedger.reconcile(db, obligation)

            await log_event(
                db=db,
                action=AuditAction.PAYMENT_DELETED,
                actor_id=deleted_by,
                actor_username=actor_username,
                target_user_id=obligation.user_id,
                entity_type="payment",
                entity_id=payment.id,
                metadata={"fee_id": fee_id, "amount": payment.amount}
            )

        logger.info("Payment %s deleted, fee obligation %s now %s", payment_id, fee_id, obligation.status.value)
        return obligation

    @staticmethod
    async def list_payments(db: AsyncSession, fee_id: int) -> List[PaymentRecord]:
        """Active payments for an obligation, most recent first."""
        await FeeObligationRegistry.get_obligation(db, fee_id)

        result = await db.execute(
            select(PaymentRecord).where(
                PaymentRecord.fee_id == fee_id,
                PaymentRecord.deleted_at.is_(None)
            ).order_by(desc(PaymentRecord.payment_date), desc(PaymentRecord.id))
        )
        return list(result.scalars().all())

    @staticmethod
    async def _get_payment_for_update(db: AsyncSession, payment_id: int) -> PaymentRecord:
        result = await db.execute(
            select(PaymentRecord)
            .where(PaymentRecord.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()
        if payment is None or payment.is_deleted:
            raise ResourceNotFoundError("Payment", payment_id)
        return payment


def _jsonable(value):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, PaymentMethod):
        return value.value
    return value
