"""
Payment API Endpoints.

Recording, correcting and deleting payments is admin-only; each one
reconciles the owning fee before responding.
"""

from fastapi import APIRouter, Depends, status, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from fee_ledger.app.db.session import get_db
from fee_ledger.app.core.dependencies import get_current_user
from fee_ledger.app.core.guards import require_admin, OwnershipGuard
from fee_ledger.app.domain.billing.obligation_registry import FeeObligationRegistry
from fee_ledger.app.domain.billing.payment_ledger import PaymentLedger
from fee_ledger.app.schemas.billing import (
    PaymentCreate, PaymentUpdate, PaymentResponse, PaymentRecordedResponse, FeeStatusResponse
)
from fee_ledger.app.schemas.common import ApiResponse, ok

router = APIRouter(prefix="/fees", tags=["Payments"])
ownership_guard = OwnershipGuard()


def _recorded(payment, obligation) -> PaymentRecordedResponse:
    return PaymentRecordedResponse(
        payment=PaymentResponse.model_validate(payment),
        fee_status=obligation.status,
        fee_status_source=obligation.status_source
    )


@router.post("/payment", response_model=ApiResponse[PaymentRecordedResponse], status_code=status.HTTP_201_CREATED)
async def record_payment(
    body: PaymentCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Record a payment against a fee (Admin only)."""
    payment, obligation = await PaymentLedger.record_payment(
        db,
        fee_id=body.fee_id,
        amount=body.amount,
        payment_method=body.payment_method,
        payment_date=body.payment_date,
        transaction_id=body.transaction_id,
        notes=body.notes,
        recorded_by=current_user["user_id"],
        actor_username=current_user.get("sub")
    )
    return ok(_recorded(payment, obligation), "Payment recorded successfully", status.HTTP_201_CREATED)


@router.patch("/payment/{payment_id}", response_model=ApiResponse[PaymentRecordedResponse])
async def update_payment(
    body: PaymentUpdate,
    payment_id: int = Path(..., description="Payment ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Correct a payment (Admin only)."""
    payment, obligation = await PaymentLedger.update_payment(
        db,
        payment_id,
        changes=body.model_dump(exclude_unset=True),
        updated_by=current_user["user_id"],
        actor_username=current_user.get("sub")
    )
    return ok(_recorded(payment, obligation), "Payment updated successfully")


@router.delete("/payment/{payment_id}", response_model=ApiResponse[FeeStatusResponse])
async def delete_payment(
    payment_id: int = Path(..., description="Payment ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Delete a payment (Admin only)."""
    obligation = await PaymentLedger.delete_payment(
        db,
        payment_id,
        deleted_by=current_user["user_id"],
        actor_username=current_user.get("sub")
    )
    return ok(
        FeeStatusResponse(
            fee_id=obligation.id,
            fee_status=obligation.status,
            fee_status_source=obligation.status_source
        ),
        "Payment deleted successfully"
    )


@router.get("/{fee_id}/payments", response_model=ApiResponse[List[PaymentResponse]])
async def list_fee_payments(
    fee_id: int = Path(..., description="Fee ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List a fee's payments, most recent first (Admin or the fee's subject)."""
    obligation = await FeeObligationRegistry.get_obligation(db, fee_id)
    ownership_guard.enforce(obligation.user_id, current_user, "fee")

    payments = await PaymentLedger.list_payments(db, fee_id)
    return ok([PaymentResponse.model_validate(p) for p in payments], "Fee payments retrieved successfully")
