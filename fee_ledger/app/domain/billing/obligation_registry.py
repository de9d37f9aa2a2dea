"""
Fee Obligation Registry (Domain Logic).

Owns creation and uniqueness of fee obligations: at most one per
(subject, course) pair.
"""

import logging
from datetime import date
from typing import Optional, List

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from fee_ledger.app.core.exceptions import (
    ValidationError, ResourceNotFoundError, ConflictError, PreconditionFailedError
)
from fee_ledger.app.domain.billing.status_reconciler import apply_override, status_view
from fee_ledger.app.domain.billing.unit_of_work import ledger_unit, locked_ledger_unit, utcnow
from fee_ledger.app.models.billing_enums import FeeStatus
from fee_ledger.app.models.fee_obligation import FeeObligation
from fee_ledger.app.services.audit import log_event, AuditAction
from fee_ledger.app.services.course_directory import CourseDirectory

logger = logging.getLogger("fee_ledger.obligations")

DUPLICATE_FEE_MESSAGE = "Fee already exists for this user and course"


def _require_positive(amount: Optional[int]) -> None:
    if amount is None or amount <= 0:
        raise ValidationError("Amount must be greater than zero", details={"amount": amount})


class FeeObligationRegistry:

    @staticmethod
    async def create_obligation(
        db: AsyncSession,
        user_id: int,
        course_id: int,
        amount: int,
        due_date: date,
        created_by: int,
        description: Optional[str] = None,
        actor_username: Optional[str] = None
    ) -> FeeObligation:
        """
        Create a fee obligation for an enrolled subject.

        Flow:
        1. Validate amount and due date
        2. Subject and course must exist (NotFound)
        3. Subject must be enrolled in the course (PreconditionFailed)
        4. No obligation for the pair yet (Conflict; the unique constraint
           backs this up for concurrent creators)
        5. Persist with status PENDING, derived

        Returns:
            Created FeeObligation
        """
        _require_positive(amount)
        if due_date is None:
            raise ValidationError("Due date is required")

        if await CourseDirectory.get_subject(db, user_id) is None:
            raise ResourceNotFoundError("User", user_id)

        if await CourseDirectory.get_course(db, course_id) is None:
            raise ResourceNotFoundError("Course", course_id)

        if not await CourseDirectory.is_enrolled(db, user_id, course_id):
            raise PreconditionFailedError(
                "User is not enrolled in this course",
                details={"user_id": user_id, "course_id": course_id}
            )

        existing = await db.execute(
            select(FeeObligation.id).where(
                FeeObligation.user_id == user_id,
                FeeObligation.course_id == course_id
            )
        )
        if existing.first() is not None:
            raise ConflictError(DUPLICATE_FEE_MESSAGE, details={"user_id": user_id, "course_id": course_id})

        async with ledger_unit(db, DUPLICATE_FEE_MESSAGE):
            obligation = FeeObligation(
                user_id=user_id,
                course_id=course_id,
                amount=amount,
                due_date=due_date,
                description=description or "",
                status=FeeStatus.PENDING,
                created_by_id=created_by
            )
            db.add(obligation)
            await db.flush()

            await log_event(
                db=db,
                action=AuditAction.FEE_CREATED,
                actor_id=created_by,
                actor_username=actor_username,
                target_user_id=user_id,
                entity_type="fee",
                entity_id=obligation.id,
                metadata={"course_id": course_id, "amount": amount}
            )

        logger.info("Fee obligation %s created for user %s course %s", obligation.id, user_id, course_id)
        return obligation

    @staticmethod
    async def get_obligation(db: AsyncSession, fee_id: int, for_update: bool = False) -> FeeObligation:
        """
        Load one obligation.

        With for_update the row is locked (PostgreSQL) and re-read from the
        database even if the session already holds a copy.

        Raises:
            ResourceNotFoundError: If no such obligation
        """
        query = select(FeeObligation).where(FeeObligation.id == fee_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)

        result = await db.execute(query)
        obligation = result.scalar_one_or_none()

        if not obligation:
            raise ResourceNotFoundError("Fee", fee_id)

        return obligation

    @staticmethod
    async def list_obligations(
        db: AsyncSession,
        status: Optional[FeeStatus] = None,
        user_id: Optional[int] = None,
        course_id: Optional[int] = None
    ) -> List[FeeObligation]:
        """List obligations newest first; every filter given must match."""
        query = select(FeeObligation).order_by(desc(FeeObligation.created_at), desc(FeeObligation.id))

        if status is not None:
            query = query.where(FeeObligation.status == status)

        if user_id is not None:
            query = query.where(FeeObligation.user_id == user_id)

        if course_id is not None:
            query = query.where(FeeObligation.course_id == course_id)

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_obligations_for_subject(db: AsyncSession, user_id: int) -> List[FeeObligation]:
        return await FeeObligationRegistry.list_obligations(db, user_id=user_id)

    @staticmethod
    async def update_obligation(
        db: AsyncSession,
        fee_id: int,
        updated_by: int,
        amount: Optional[int] = None,
        due_date: Optional[date] = None,
        description: Optional[str] = None,
        actor_username: Optional[str] = None
    ) -> FeeObligation:
        """
        Edit amount, due date or description of an obligation.

        A changed amount moves the paid/partial boundary, so the obligation
        is reconciled against its ledger in the same unit.
        """
        from fee_ledger.app.domain.billing.payment_ledger import PaymentLedger

        if amount is not None:
            _require_positive(amount)

        async with locked_ledger_unit(db, fee_id):
            obligation = await FeeObligationRegistry.get_obligation(db, fee_id, for_update=True)

            changes = {}
            if amount is not None and amount != obligation.amount:
                changes["amount"] = {"from": obligation.amount, "to": amount}
                obligation.amount = amount
            if due_date is not None and due_date != obligation.due_date:
                changes["due_date"] = {"from": obligation.due_date.isoformat(), "to": due_date.isoformat()}
                obligation.due_date = due_date
            if description is not None and description != obligation.description:
                changes["description"] = True
                obligation.description = description

            if "amount" in changes:
                await PaymentLedger.reconcile(db, obligation)

            obligation.updated_at = utcnow()
            await db.flush()

            await log_event(
                db=db,
                action=AuditAction.FEE_UPDATED,
                actor_id=updated_by,
                actor_username=actor_username,
                target_user_id=obligation.user_id,
                entity_type="fee",
                entity_id=obligation.id,
                metadata=changes
            )

        logger.info("Fee obligation %s updated: %s", fee_id, sorted(changes))
        return obligation

    @staticmethod
    async def override_status(
        db: AsyncSession,
        fee_id: int,
        status: FeeStatus,
        reason: str,
        admin_id: int,
        actor_username: Optional[str] = None
    ) -> FeeObligation:
        """
        Set an obligation's status directly (admin action).

        Bypasses the reconciler, so the obligation is tagged
        MANUAL_OVERRIDE with who and why, and the action is audited with the
        derived status it replaced.

        Raises:
            ValidationError: Missing reason or invalid status
        """
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to override a fee status")

        try:
            status = FeeStatus(status)
        except ValueError:
            raise ValidationError("Valid status is required (pending, partial, or paid)")

        async with locked_ledger_unit(db, fee_id):
            obligation = await FeeObligationRegistry.get_obligation(db, fee_id, for_update=True)
            previous = status_view(obligation)

            apply_override(obligation, status, reason.strip(), admin_id, utcnow())
            obligation.updated_at = utcnow()
            await db.flush()

            await log_event(
                db=db,
                action=AuditAction.FEE_STATUS_OVERRIDDEN,
                actor_id=admin_id,
                actor_username=actor_username,
                target_user_id=obligation.user_id,
                entity_type="fee",
                entity_id=obligation.id,
                metadata={
                    "from_status": previous.status.value,
                    "from_source": previous.source.value,
                    "to_status": status.value,
                    "reason": obligation.override_reason
                }
            )

        logger.warning(
            "Fee obligation %s status overridden to %s by user %s: %s",
            fee_id, status.value, admin_id, obligation.override_reason
        )
        return obligation
