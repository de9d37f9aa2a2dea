"""
Fee Obligation API Endpoints.

Admins create, edit and override fee obligations; subjects read their own.
"""

from fastapi import APIRouter, Depends, status, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from fee_ledger.app.db.session import get_db
from fee_ledger.app.core.dependencies import get_current_user
from fee_ledger.app.core.guards import require_admin, OwnershipGuard
from fee_ledger.app.domain.billing.obligation_registry import FeeObligationRegistry
from fee_ledger.app.domain.billing.payment_ledger import PaymentLedger
from fee_ledger.app.models.billing_enums import FeeStatus
from fee_ledger.app.schemas.billing import FeeCreate, FeeUpdate, FeeStatusOverride, FeeResponse, AuditEntryResponse
from fee_ledger.app.schemas.common import ApiResponse, ok
from fee_ledger.app.services.audit import get_audit_trail

router = APIRouter(prefix="/fees", tags=["Fees"])
ownership_guard = OwnershipGuard()


@router.post("", response_model=ApiResponse[FeeResponse], status_code=status.HTTP_201_CREATED)
async def create_fee(
    fee: FeeCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a fee obligation (Admin only).

    The subject must be enrolled in the course and may hold only one
    obligation per course.
    """
    obligation = await FeeObligationRegistry.create_obligation(
        db,
        user_id=fee.user_id,
        course_id=fee.course_id,
        amount=fee.amount,
        due_date=fee.due_date,
        description=fee.description,
        created_by=current_user["user_id"],
        actor_username=current_user.get("sub")
    )
    await db.refresh(obligation, attribute_names=["user", "course"])
    return ok(FeeResponse.model_validate(obligation), "Fee created successfully", status.HTTP_201_CREATED)


@router.get("", response_model=ApiResponse[List[FeeResponse]])
async def list_fees(
    status_filter: Optional[FeeStatus] = Query(None, alias="status"),
    user_id: Optional[int] = Query(None),
    course_id: Optional[int] = Query(None),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """List fee obligations, newest first (Admin only)."""
    obligations = await FeeObligationRegistry.list_obligations(
        db, status=status_filter, user_id=user_id, course_id=course_id
    )
    return ok([FeeResponse.model_validate(o) for o in obligations], "Fees retrieved successfully")


@router.get("/user/{user_id}", response_model=ApiResponse[List[FeeResponse]])
async def list_user_fees(
    user_id: int = Path(..., description="Subject user ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List one subject's fee obligations (Admin or the subject)."""
    ownership_guard.enforce(user_id, current_user, "user's fees")

    obligations = await FeeObligationRegistry.get_obligations_for_subject(db, user_id)
    return ok([FeeResponse.model_validate(o) for o in obligations], "User fees retrieved successfully")


@router.get("/{fee_id}", response_model=ApiResponse[FeeResponse])
async def get_fee(
    fee_id: int = Path(..., description="Fee ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get a fee obligation, including where its status came from."""
    obligation = await FeeObligationRegistry.get_obligation(db, fee_id)
    ownership_guard.enforce(obligation.user_id, current_user, "fee")

    return ok(FeeResponse.model_validate(obligation), "Fee retrieved successfully")


@router.patch("/{fee_id}", response_model=ApiResponse[FeeResponse])
async def update_fee(
    changes: FeeUpdate,
    fee_id: int = Path(..., description="Fee ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Edit amount, due date or description (Admin only). Status is reconciled."""
    obligation = await FeeObligationRegistry.update_obligation(
        db,
        fee_id,
        updated_by=current_user["user_id"],
        amount=changes.amount,
        due_date=changes.due_date,
        description=changes.description,
        actor_username=current_user.get("sub")
    )
    return ok(FeeResponse.model_validate(obligation), "Fee updated successfully")


@router.patch("/{fee_id}/status", response_model=ApiResponse[FeeResponse])
async def override_fee_status(
    override: FeeStatusOverride,
    fee_id: int = Path(..., description="Fee ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Override a fee's status (Admin only).

    The fee is marked MANUAL_OVERRIDE with the reason until the next ledger
    change or an explicit reconcile.
    """
    obligation = await FeeObligationRegistry.override_status(
        db,
        fee_id,
        status=override.status,
        reason=override.reason,
        admin_id=current_user["user_id"],
        actor_username=current_user.get("sub")
    )
    return ok(FeeResponse.model_validate(obligation), "Fee status updated successfully")


@router.post("/{fee_id}/reconcile", response_model=ApiResponse[FeeResponse])
async def reconcile_fee(
    fee_id: int = Path(..., description="Fee ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Drop any manual override and restore the payment-derived status (Admin only)."""
    obligation = await PaymentLedger.reconcile_obligation(
        db,
        fee_id,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub")
    )
    return ok(FeeResponse.model_validate(obligation), "Fee status reconciled successfully")


@router.get("/{fee_id}/audit", response_model=ApiResponse[List[AuditEntryResponse]])
async def get_fee_audit_trail(
    fee_id: int = Path(..., description="Fee ID"),
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Audit trail of a fee, most recent first (Admin only).

    Overrides keep their reason and author here after reconciliation has
    replaced them on the fee itself.
    """
    await FeeObligationRegistry.get_obligation(db, fee_id)

    entries = await get_audit_trail(db, entity_type="fee", entity_id=fee_id, limit=limit)
    return ok([AuditEntryResponse.model_validate(e) for e in entries], "Fee audit trail retrieved successfully")
