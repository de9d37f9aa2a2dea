"""
Tests for fee obligation creation, lookup, editing and status override.
"""

import pytest
from datetime import date, timedelta

from fee_ledger.app.core.exceptions import (
    ConflictError, PreconditionFailedError, ResourceNotFoundError, ValidationError
)
from fee_ledger.app.domain.billing.obligation_registry import FeeObligationRegistry, DUPLICATE_FEE_MESSAGE
from fee_ledger.app.domain.billing.payment_ledger import PaymentLedger
from fee_ledger.app.models.billing_enums import FeeStatus, StatusSource
from fee_ledger.app.models.course import Course
from fee_ledger.app.services.audit import get_audit_trail, AuditAction


DUE = date.today() + timedelta(days=30)


@pytest.mark.asyncio
async def test_create_obligation_starts_pending(db_session, fee, student, course):
    assert fee.id is not None
    assert fee.user_id == student.id
    assert fee.course_id == course.id
    assert fee.amount == 10000
    assert fee.status == FeeStatus.PENDING
    assert fee.status_source == StatusSource.DERIVED
    assert fee.description == ""

    trail = await get_audit_trail(db_session, entity_type="fee", entity_id=fee.id)
    assert [entry.action for entry in trail] == [AuditAction.FEE_CREATED]


@pytest.mark.asyncio
async def test_second_obligation_for_same_pair_conflicts(db_session, fee, admin_user, student, course):
    with pytest.raises(ConflictError) as exc_info:
        await FeeObligationRegistry.create_obligation(
            db_session, user_id=student.id, course_id=course.id,
            amount=5000, due_date=DUE, created_by=admin_user.id
        )

    assert exc_info.value.message == DUPLICATE_FEE_MESSAGE
    assert len(await FeeObligationRegistry.list_obligations(db_session)) == 1


@pytest.mark.asyncio
async def test_create_requires_enrollment(db_session, admin_user, student):
    lonely_course = Course(title="Unattended")
    db_session.add(lonely_course)
    await db_session.commit()

    with pytest.raises(PreconditionFailedError):
        await FeeObligationRegistry.create_obligation(
            db_session, user_id=student.id, course_id=lonely_course.id,
            amount=5000, due_date=DUE, created_by=admin_user.id
        )


@pytest.mark.asyncio
async def test_create_unknown_user_or_course(db_session, admin_user, student, course):
    with pytest.raises(ResourceNotFoundError):
        await FeeObligationRegistry.create_obligation(
            db_session, user_id=9999, course_id=course.id,
            amount=5000, due_date=DUE, created_by=admin_user.id
        )

    with pytest.raises(ResourceNotFoundError):
        await FeeObligationRegistry.create_obligation(
            db_session, user_id=student.id, course_id=9999,
            amount=5000, due_date=DUE, created_by=admin_user.id
        )


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -100])
async def test_create_rejects_non_positive_amount(db_session, admin_user, student, course, amount):
    with pytest.raises(ValidationError):
        await FeeObligationRegistry.create_obligation(
            db_session, user_id=student.id, course_id=course.id,
            amount=amount, due_date=DUE, created_by=admin_user.id
        )


@pytest.mark.asyncio
async def test_list_filters_compose(db_session, fee, admin_user, other_student, course):
    second = await FeeObligationRegistry.create_obligation(
        db_session, user_id=other_student.id, course_id=course.id,
        amount=3000, due_date=DUE, created_by=admin_user.id
    )
    await PaymentLedger.record_payment(db_session, second.id, 1000, recorded_by=admin_user.id)

    everything = await FeeObligationRegistry.list_obligations(db_session)
    assert [o.id for o in everything] == [second.id, fee.id]

    partial = await FeeObligationRegistry.list_obligations(db_session, status=FeeStatus.PARTIAL)
    assert [o.id for o in partial] == [second.id]

    mine = await FeeObligationRegistry.list_obligations(
        db_session, status=FeeStatus.PENDING, user_id=fee.user_id, course_id=course.id
    )
    assert [o.id for o in mine] == [fee.id]

    assert await FeeObligationRegistry.list_obligations(
        db_session, status=FeeStatus.PAID, user_id=fee.user_id
    ) == []


@pytest.mark.asyncio
async def test_get_missing_obligation(db_session):
    with pytest.raises(ResourceNotFoundError):
        await FeeObligationRegistry.get_obligation(db_session, 424242)


@pytest.mark.asyncio
async def test_amount_change_reconciles(db_session, fee, admin_user):
    await PaymentLedger.record_payment(db_session, fee.id, 6000, recorded_by=admin_user.id)

    updated = await FeeObligationRegistry.update_obligation(
        db_session, fee.id, updated_by=admin_user.id, amount=6000, description="Reduced after review"
    )

    assert updated.amount == 6000
    assert updated.status == FeeStatus.PAID
    assert updated.description == "Reduced after review"


@pytest.mark.asyncio
async def test_override_is_tagged_and_audited(db_session, fee, admin_user):
    overridden = await FeeObligationRegistry.override_status(
        db_session, fee.id, status=FeeStatus.PAID, reason="Waived by dean", admin_id=admin_user.id
    )

    assert overridden.status == FeeStatus.PAID
    assert overridden.status_source == StatusSource.MANUAL_OVERRIDE
    assert overridden.override_reason == "Waived by dean"
    assert overridden.overridden_by_id == admin_user.id
    assert overridden.overridden_at is not None

    trail = await get_audit_trail(db_session, action=AuditAction.FEE_STATUS_OVERRIDDEN)
    assert len(trail) == 1
    assert trail[0].meta_data["from_status"] == "pending"
    assert trail[0].meta_data["to_status"] == "paid"
    assert trail[0].meta_data["reason"] == "Waived by dean"


@pytest.mark.asyncio
async def test_override_requires_reason_and_valid_status(db_session, fee, admin_user):
    with pytest.raises(ValidationError):
        await FeeObligationRegistry.override_status(
            db_session, fee.id, status=FeeStatus.PAID, reason="   ", admin_id=admin_user.id
        )

    with pytest.raises(ValidationError):
        await FeeObligationRegistry.override_status(
            db_session, fee.id, status="settled", reason="Because", admin_id=admin_user.id
        )

    unchanged = await FeeObligationRegistry.get_obligation(db_session, fee.id)
    assert unchanged.status_source == StatusSource.DERIVED


@pytest.mark.asyncio
async def test_reconcile_restores_derived_status(db_session, fee, admin_user):
    await PaymentLedger.record_payment(db_session, fee.id, 4000, recorded_by=admin_user.id)
    await FeeObligationRegistry.override_status(
        db_session, fee.id, status=FeeStatus.PAID, reason="Sponsor pledge", admin_id=admin_user.id
    )

    restored = await PaymentLedger.reconcile_obligation(db_session, fee.id, actor_id=admin_user.id)

    assert restored.status == FeeStatus.PARTIAL
    assert restored.status_source == StatusSource.DERIVED
    assert restored.override_reason is None
