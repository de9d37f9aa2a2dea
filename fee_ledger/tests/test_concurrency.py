"""
Concurrency Tests.

Concurrent requests each use their own session, as they would in separate
API workers. The obligation lock must serialize them.
"""

import asyncio
import pytest
from datetime import date

from fee_ledger.app.core.config import settings
from fee_ledger.app.core.exceptions import ConflictError
from fee_ledger.app.domain.billing.invoice_generator import InvoiceGenerator
from fee_ledger.app.domain.billing.obligation_registry import FeeObligationRegistry
from fee_ledger.app.domain.billing.payment_ledger import PaymentLedger
from fee_ledger.app.models.billing_enums import FeeStatus
from fee_ledger.app.services.obligation_locking import obligation_lock


@pytest.mark.asyncio
async def test_concurrent_payments_do_not_lose_updates(session_factory, fee, admin_user):
    """3000 and 7000 recorded at once on a 10000 fee must end fully paid."""

    async def pay(amount):
        async with session_factory() as session:
            await PaymentLedger.record_payment(session, fee.id, amount, recorded_by=admin_user.id)

    await asyncio.gather(pay(3000), pay(7000))

    async with session_factory() as session:
        obligation = await FeeObligationRegistry.get_obligation(session, fee.id)
        assert await PaymentLedger.current_aggregate(session, fee.id) == 10000
        assert obligation.status == FeeStatus.PAID


@pytest.mark.asyncio
async def test_concurrent_invoice_generations_serialize(session_factory, fee, admin_user):
    """Generations racing on one fee queue on its lock and each get a fresh number."""
    n = 10

    async def generate():
        async with session_factory() as session:
            invoice = await InvoiceGenerator.generate_invoice(session, fee.id, created_by=admin_user.id)
            return invoice.invoice_number

    numbers = await asyncio.gather(*(generate() for _ in range(n)))

    assert len(set(numbers)) == n
    assert sorted(int(number.rsplit("-", 1)[1]) for number in numbers) == list(range(1, n + 1))


@pytest.mark.asyncio
async def test_busy_obligation_surfaces_conflict(db_session, fee, admin_user, mocker):
    mocker.patch.object(settings, "obligation_lock_wait_seconds", 0.05)

    async with obligation_lock(fee.id):
        with pytest.raises(ConflictError) as exc_info:
            await PaymentLedger.record_payment(db_session, fee.id, 1000, recorded_by=admin_user.id)

    assert "retry" in exc_info.value.message
    assert await PaymentLedger.current_aggregate(db_session, fee.id) == 0


@pytest.mark.asyncio
async def test_other_obligations_are_not_blocked(db_session, fee, admin_user, other_student, course, mocker):
    mocker.patch.object(settings, "obligation_lock_wait_seconds", 0.05)
    other_fee = await FeeObligationRegistry.create_obligation(
        db_session, user_id=other_student.id, course_id=course.id,
        amount=2000, due_date=date.today(), created_by=admin_user.id
    )

    async with obligation_lock(fee.id):
        _, obligation = await PaymentLedger.record_payment(
            db_session, other_fee.id, 2000, recorded_by=admin_user.id
        )

    assert obligation.status == FeeStatus.PAID
