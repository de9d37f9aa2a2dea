"""
Invoice API Endpoints.

Admins generate invoices; subjects can list and open their own.
"""

from fastapi import APIRouter, Depends, status, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from fee_ledger.app.db.session import get_db
from fee_ledger.app.core.dependencies import get_current_user
from fee_ledger.app.core.guards import require_admin, OwnershipGuard
from fee_ledger.app.domain.billing.invoice_generator import InvoiceGenerator
from fee_ledger.app.models.billing_enums import InvoiceStatus
from fee_ledger.app.schemas.billing import InvoiceGenerate, InvoiceResponse
from fee_ledger.app.schemas.common import ApiResponse, ok

router = APIRouter(prefix="/fees", tags=["Invoices"])
ownership_guard = OwnershipGuard()


@router.post("/invoice", response_model=ApiResponse[InvoiceResponse], status_code=status.HTTP_201_CREATED)
async def generate_invoice(
    body: InvoiceGenerate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Generate an invoice snapshot for a fee (Admin only)."""
    invoice = await InvoiceGenerator.generate_invoice(
        db,
        fee_id=body.fee_id,
        notes=body.notes,
        created_by=current_user["user_id"],
        actor_username=current_user.get("sub")
    )
    await db.refresh(invoice, attribute_names=["user"])
    return ok(InvoiceResponse.model_validate(invoice), "Invoice generated successfully", status.HTTP_201_CREATED)


@router.get("/invoices", response_model=ApiResponse[List[InvoiceResponse]])
async def list_invoices(
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status"),
    user_id: Optional[int] = Query(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    List invoices, newest first.

    Admins may filter by any subject; a subject only ever sees their own.
    """
    subject_filter = ownership_guard.filter_by_ownership(current_user, user_id)

    invoices = await InvoiceGenerator.list_invoices(db, status=status_filter, user_id=subject_filter)
    return ok([InvoiceResponse.model_validate(i) for i in invoices], "Invoices retrieved successfully")


@router.get("/invoice/{invoice_id}", response_model=ApiResponse[InvoiceResponse])
async def get_invoice(
    invoice_id: int = Path(..., description="Invoice ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get an invoice with the payments it captured (Admin or the invoice's subject)."""
    invoice = await InvoiceGenerator.get_invoice(db, invoice_id)
    ownership_guard.enforce(invoice.user_id, current_user, "invoice")

    return ok(InvoiceResponse.model_validate(invoice), "Invoice retrieved successfully")
