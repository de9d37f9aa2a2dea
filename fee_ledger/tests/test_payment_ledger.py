"""
Tests for the payment ledger: aggregation, reconciliation after every
mutation, and payment corrections.
"""

import pytest
from datetime import datetime, timedelta, timezone

from fee_ledger.app.core.exceptions import ResourceNotFoundError, ValidationError
from fee_ledger.app.domain.billing.obligation_registry import FeeObligationRegistry
from fee_ledger.app.domain.billing.payment_ledger import PaymentLedger
from fee_ledger.app.domain.billing.status_reconciler import derive_status
from fee_ledger.app.models.billing_enums import FeeStatus, PaymentMethod, StatusSource
from fee_ledger.app.services.audit import get_audit_trail, AuditAction
from fee_ledger.app.services.obligation_locking import obligation_lock_key


async def assert_reconciled(db, fee_id):
    obligation = await FeeObligationRegistry.get_obligation(db, fee_id, for_update=True)
    aggregate = await PaymentLedger.current_aggregate(db, fee_id)
    assert obligation.status == derive_status(obligation.amount, aggregate)
    return aggregate


@pytest.mark.asyncio
async def test_payments_move_status_to_paid(db_session, fee, admin_user):
    payment, obligation = await PaymentLedger.record_payment(
        db_session, fee.id, 4000, recorded_by=admin_user.id, payment_method=PaymentMethod.BANK_TRANSFER
    )
    assert payment.id is not None
    assert payment.user_id == fee.user_id
    assert payment.payment_method == PaymentMethod.BANK_TRANSFER
    assert obligation.status == FeeStatus.PARTIAL
    assert await PaymentLedger.current_aggregate(db_session, fee.id) == 4000

    _, obligation = await PaymentLedger.record_payment(db_session, fee.id, 6000, recorded_by=admin_user.id)
    assert obligation.status == FeeStatus.PAID
    assert await assert_reconciled(db_session, fee.id) == 10000


@pytest.mark.asyncio
async def test_overpayment_saturates_at_paid(db_session, fee, admin_user):
    _, obligation = await PaymentLedger.record_payment(db_session, fee.id, 15000, recorded_by=admin_user.id)

    assert obligation.status == FeeStatus.PAID
    assert await PaymentLedger.current_aggregate(db_session, fee.id) == 15000


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -1])
async def test_non_positive_payment_rejected(db_session, fee, admin_user, amount):
    with pytest.raises(ValidationError):
        await PaymentLedger.record_payment(db_session, fee.id, amount, recorded_by=admin_user.id)

    assert await PaymentLedger.current_aggregate(db_session, fee.id) == 0


@pytest.mark.asyncio
async def test_unknown_method_rejected(db_session, fee, admin_user):
    with pytest.raises(ValidationError):
        await PaymentLedger.record_payment(db_session, fee.id, 100, recorded_by=admin_user.id, payment_method="barter")


@pytest.mark.asyncio
async def test_payment_on_missing_obligation(db_session, admin_user):
    with pytest.raises(ResourceNotFoundError):
        await PaymentLedger.record_payment(db_session, 9999, 100, recorded_by=admin_user.id)


@pytest.mark.asyncio
async def test_record_payment_takes_obligation_lock(db_session, fee, admin_user, mock_redis):
    await PaymentLedger.record_payment(db_session, fee.id, 100, recorded_by=admin_user.id)

    assert mock_redis.lock_requests == [obligation_lock_key(fee.id)]


@pytest.mark.asyncio
async def test_payment_clears_manual_override(db_session, fee, admin_user):
    await FeeObligationRegistry.override_status(
        db_session, fee.id, status=FeeStatus.PAID, reason="Waived", admin_id=admin_user.id
    )

    _, obligation = await PaymentLedger.record_payment(db_session, fee.id, 2500, recorded_by=admin_user.id)

    assert obligation.status == FeeStatus.PARTIAL
    assert obligation.status_source == StatusSource.DERIVED


@pytest.mark.asyncio
async def test_update_payment_reconciles(db_session, fee, admin_user):
    payment, _ = await PaymentLedger.record_payment(db_session, fee.id, 10000, recorded_by=admin_user.id)

    updated, obligation = await PaymentLedger.update_payment(
        db_session, payment.id, {"amount": 7000, "notes": "Bank reversed part"}, updated_by=admin_user.id
    )

    assert updated.amount == 7000
    assert updated.notes == "Bank reversed part"
    assert obligation.status == FeeStatus.PARTIAL
    assert await assert_reconciled(db_session, fee.id) == 7000

    trail = await get_audit_trail(db_session, action=AuditAction.PAYMENT_UPDATED)
    assert trail[0].meta_data["changes"]["amount"] == {"from": 10000, "to": 7000}


@pytest.mark.asyncio
async def test_update_payment_rejects_bad_amount(db_session, fee, admin_user):
    payment, _ = await PaymentLedger.record_payment(db_session, fee.id, 5000, recorded_by=admin_user.id)

    with pytest.raises(ValidationError):
        await PaymentLedger.update_payment(db_session, payment.id, {"amount": 0}, updated_by=admin_user.id)


@pytest.mark.asyncio
async def test_delete_payment_reconciles_and_hides_payment(db_session, fee, admin_user):
    first, _ = await PaymentLedger.record_payment(db_session, fee.id, 4000, recorded_by=admin_user.id)
    second, _ = await PaymentLedger.record_payment(db_session, fee.id, 6000, recorded_by=admin_user.id)

    obligation = await PaymentLedger.delete_payment(db_session, second.id, deleted_by=admin_user.id)

    assert obligation.status == FeeStatus.PARTIAL
    assert await assert_reconciled(db_session, fee.id) == 4000
    assert [p.id for p in await PaymentLedger.list_payments(db_session, fee.id)] == [first.id]

    with pytest.raises(ResourceNotFoundError):
        await PaymentLedger.delete_payment(db_session, second.id, deleted_by=admin_user.id)

    with pytest.raises(ResourceNotFoundError):
        await PaymentLedger.update_payment(db_session, second.id, {"amount": 1}, updated_by=admin_user.id)


@pytest.mark.asyncio
async def test_list_payments_most_recent_first(db_session, fee, admin_user):
    now = datetime.now(timezone.utc)
    older, _ = await PaymentLedger.record_payment(
        db_session, fee.id, 1000, recorded_by=admin_user.id, payment_date=now - timedelta(days=10)
    )
    newer, _ = await PaymentLedger.record_payment(
        db_session, fee.id, 1000, recorded_by=admin_user.id, payment_date=now - timedelta(days=1)
    )
    middle, _ = await PaymentLedger.record_payment(
        db_session, fee.id, 1000, recorded_by=admin_user.id, payment_date=now - timedelta(days=5)
    )

    payments = await PaymentLedger.list_payments(db_session, fee.id)

    assert [p.id for p in payments] == [newer.id, middle.id, older.id]


@pytest.mark.asyncio
async def test_list_payments_missing_obligation(db_session):
    with pytest.raises(ResourceNotFoundError):
        await PaymentLedger.list_payments(db_session, 9999)
