"""
Invoice Generator (Domain Logic).

Produces numbered, immutable invoice snapshots of a fee obligation's
ledger. An invoice never changes after creation; reflecting later payments
takes a new invoice.
"""

import logging
from typing import Optional, List

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from fee_ledger.app.core.exceptions import ResourceNotFoundError
from fee_ledger.app.domain.billing.invoice_numbering import next_invoice_number
from fee_ledger.app.domain.billing.obligation_registry import FeeObligationRegistry
from fee_ledger.app.domain.billing.payment_ledger import PaymentLedger
from fee_ledger.app.domain.billing.unit_of_work import locked_ledger_unit, utcnow
from fee_ledger.app.models.billing_enums import InvoiceStatus
from fee_ledger.app.models.invoice import Invoice, InvoicePaymentLine
from fee_ledger.app.models.payment_record import PaymentRecord
from fee_ledger.app.services.audit import log_event, AuditAction

logger = logging.getLogger("fee_ledger.invoices")


class InvoiceGenerator:

    @staticmethod
    async def generate_invoice(
        db: AsyncSession,
        fee_id: int,
        created_by: int,
        notes: Optional[str] = None,
        actor_username: Optional[str] = None
    ) -> Invoice:
        """
        Generate an invoice for a fee obligation.

        Flow:
        1. Lock the obligation so no payment change lands mid-snapshot
        2. Load obligation and its active payments (oldest first)
        3. amount_paid = ledger aggregate, balance = amount - amount_paid
        4. Allocate the next invoice number
        5. Persist invoice + payment lines, PAID if balance <= 0 else ISSUED

        Raises:
            ResourceNotFoundError: If the obligation is missing
        """
        async with locked_ledger_unit(db, fee_id, "Invoice number collision, retry the request"):
            obligation = await FeeObligationRegistry.get_obligation(db, fee_id, for_update=True)

            result = await db.execute(
                select(PaymentRecord).where(
                    PaymentRecord.fee_id == fee_id,
                    PaymentRecord.deleted_at.is_(None)
                ).order_by(PaymentRecord.payment_date, PaymentRecord.id)
            )
            payments = list(result.scalars().all())

            amount_paid = await PaymentLedger.current_aggregate(db, fee_id)
            balance = obligation.amount - amount_paid

            issued_at = utcnow()
            invoice_number = await next_invoice_number(db, issued_at.year)

            invoice = Invoice(
                invoice_number=invoice_number,
                user_id=obligation.user_id,
                fee_id=obligation.id,
                total_amount=obligation.amount,
                amount_paid=amount_paid,
                balance=balance,
                issue_date=issued_at.date(),
                due_date=obligation.due_date,
                status=InvoiceStatus.PAID if balance <= 0 else InvoiceStatus.ISSUED,
                notes=notes,
                created_by_id=created_by,
                created_at=issued_at,
                payment_lines=[
                    InvoicePaymentLine(
                        position=position,
                        payment_id=payment.id,
                        amount=payment.amount,
                        payment_date=payment.payment_date,
                        payment_method=payment.payment_method,
                        transaction_id=payment.transaction_id
                    )
                    for position, payment in enumerate(payments, start=1)
                ]
            )
            db.add(invoice)
            await db.flush()

            await log_event(
                db=db,
                action=AuditAction.INVOICE_GENERATED,
                actor_id=created_by,
                actor_username=actor_username,
                target_user_id=obligation.user_id,
                entity_type="invoice",
                entity_id=invoice.id,
                metadata={
                    "invoice_number": invoice_number,
                    "fee_id": fee_id,
                    "balance": balance
                }
            )

        logger.info(
            "Invoice %s generated for fee obligation %s (paid %s, balance %s)",
            invoice_number, fee_id, amount_paid, balance
        )
        return invoice

    @staticmethod
    async def get_invoice(db: AsyncSession, invoice_id: int) -> Invoice:
        """
        Raises:
            ResourceNotFoundError: If no such invoice
        """
        result = await db.execute(select(Invoice).where(Invoice.id == invoice_id))
        invoice = result.scalar_one_or_none()

        if not invoice:
            raise ResourceNotFoundError("Invoice", invoice_id)

        return invoice

    @staticmethod
    async def list_invoices(
        db: AsyncSession,
        status: Optional[InvoiceStatus] = None,
        user_id: Optional[int] = None
    ) -> List[Invoice]:
        """List invoices newest first, optionally filtered by status and subject."""
        query = select(Invoice).order_by(desc(Invoice.created_at), desc(Invoice.id))

        if status is not None:
            query = query.where(Invoice.status == status)

        if user_id is not None:
            query = query.where(Invoice.user_id == user_id)

        result = await db.execute(query)
        return list(result.scalars().all())
