"""
Income approval workflow tests.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from institute_finance.app.core.exceptions import (
    HolderNotFoundError, InvalidAmountError, InvalidTransitionError, ResourceNotFoundError,
)
from institute_finance.app.domain.approvals.income_workflow import IncomeWorkflow
from institute_finance.app.domain.ledger.ledger_service import LedgerService
from institute_finance.app.domain.ledger.reference import LedgerReference
from institute_finance.app.domain.transfers.transfer_service import TransferService
from institute_finance.app.models.audit_log import AuditLog
from institute_finance.app.models.finance_enums import IncomeStatus, IncomeType, PaymentMethod
from institute_finance.app.services.event_publisher import FinanceEvent

RECEIVED = date(2024, 5, 10)


async def test_record_is_pending_without_ledger_effect(db_session, admin_id, teacher_id):
    income = await IncomeWorkflow(db_session).record(
        "1500", RECEIVED, teacher_id, income_type=IncomeType.COURSE_FEE, held_by_id=teacher_id
    )

    assert income.status == IncomeStatus.PENDING
    assert income.amount == Decimal("1500.00")
    assert await LedgerService(db_session).current_balance(teacher_id) == Decimal("0.00")


async def test_record_rejects_bad_input(db_session, admin_id):
    workflow = IncomeWorkflow(db_session)
    with pytest.raises(InvalidAmountError):
        await workflow.record("0", RECEIVED, admin_id, held_by_id=admin_id)
    with pytest.raises(HolderNotFoundError):
        await workflow.record("10", RECEIVED, admin_id, held_by_id=9999)


async def test_confirm_credits_holder_once(db_session, admin_id, teacher_id, publisher, redis_client_session):
    workflow = IncomeWorkflow(db_session, events=publisher)
    income = await workflow.record("5000", RECEIVED, teacher_id, held_by_id=teacher_id, category="Fees")
    income_id = income.id

    confirmed = await workflow.confirm(income_id, admin_id)

    assert confirmed.status == IncomeStatus.CONFIRMED
    assert confirmed.confirmed_by == admin_id
    ledger = LedgerService(db_session)
    assert await ledger.current_balance(teacher_id) == Decimal("5000.00")
    rows = await ledger.entries_for_reference(LedgerReference.income(income_id))
    assert len(rows) == 1
    assert rows[0].entry_date == RECEIVED
    assert rows[0].created_by == admin_id
    assert rows[0].description == "Income received: Fees"

    assert redis_client_session.events(FinanceEvent.INCOME_CONFIRMED)[0]["payload"]["income_id"] == income_id


async def test_double_confirm_is_rejected_and_posts_nothing(db_session, admin_id, teacher_id):
    workflow = IncomeWorkflow(db_session)
    income = await workflow.record("5000", RECEIVED, teacher_id, held_by_id=teacher_id)
    income_id = income.id
    await workflow.confirm(income_id, admin_id)

    with pytest.raises(InvalidTransitionError):
        await workflow.confirm(income_id, admin_id)

    ledger = LedgerService(db_session)
    assert await ledger.current_balance(teacher_id) == Decimal("5000.00")
    assert len(await ledger.entries_for_reference(LedgerReference.income(income_id))) == 1


async def test_confirm_without_holder_posts_nothing(db_session, admin_id):
    workflow = IncomeWorkflow(db_session)
    income = await workflow.record("800", RECEIVED, admin_id)

    confirmed = await workflow.confirm(income.id, admin_id)

    assert confirmed.status == IncomeStatus.CONFIRMED
    assert await LedgerService(db_session).entries_for_reference(LedgerReference.income(income.id)) == []


async def test_non_cash_income_is_not_held(db_session, admin_id, teacher_id):
    workflow = IncomeWorkflow(db_session)
    income = await workflow.record(
        "800", RECEIVED, admin_id, held_by_id=teacher_id, payment_method=PaymentMethod.BANK_TRANSFER
    )

    await workflow.confirm(income.id, admin_id)

    assert await LedgerService(db_session).current_balance(teacher_id) == Decimal("0.00")


async def test_reject_then_confirm_fails(db_session, admin_id, teacher_id):
    workflow = IncomeWorkflow(db_session)
    income = await workflow.record("300", RECEIVED, teacher_id, held_by_id=teacher_id)
    income_id = income.id

    rejected = await workflow.reject(income_id, admin_id, reason="Duplicate receipt")
    assert rejected.status == IncomeStatus.REJECTED
    assert rejected.notes == "Duplicate receipt"

    with pytest.raises(InvalidTransitionError):
        await workflow.confirm(income_id, admin_id)
    with pytest.raises(InvalidTransitionError):
        await workflow.reject(income_id, admin_id)

    assert await LedgerService(db_session).current_balance(teacher_id) == Decimal("0.00")


async def test_reject_default_reason_and_audit(db_session, admin_id):
    workflow = IncomeWorkflow(db_session)
    income = await workflow.record("300", RECEIVED, admin_id)
    await workflow.reject(income.id, admin_id)

    audit = (await db_session.execute(
        select(AuditLog).where(AuditLog.action == "INCOME_REJECTED")
    )).scalars().one()
    assert audit.before_snapshot["status"] == "pending"
    assert audit.after_snapshot["status"] == "rejected"
    assert audit.after_snapshot["notes"] == "Rejected by manager"


async def test_confirm_unknown_income(db_session, admin_id):
    with pytest.raises(ResourceNotFoundError):
        await IncomeWorkflow(db_session).confirm(12345, admin_id)


async def test_report_counts_confirmed_only(db_session, admin_id, teacher_id):
    workflow = IncomeWorkflow(db_session)
    first = await workflow.record("100", RECEIVED, admin_id, held_by_id=teacher_id, category="Fees")
    second = await workflow.record("250.50", RECEIVED, admin_id, held_by_id=teacher_id, category="Fees")
    third = await workflow.record("75", RECEIVED, admin_id, category="Books")
    await workflow.record("999", RECEIVED, admin_id, category="Fees")  # stays pending
    for income_id in (first.id, second.id, third.id):
        await workflow.confirm(income_id, admin_id)

    report = await workflow.report()

    assert report["total_income"] == Decimal("425.50")
    assert report["by_category"] == [
        {"category": "Books", "total": Decimal("75.00"), "count": 1},
        {"category": "Fees", "total": Decimal("350.50"), "count": 2},
    ]


async def test_list_filters(db_session, admin_id, teacher_id):
    workflow = IncomeWorkflow(db_session)
    held = await workflow.record("10", RECEIVED, admin_id, held_by_id=teacher_id)
    await workflow.record("20", RECEIVED, admin_id)
    await workflow.confirm(held.id, admin_id)

    assert [i.id for i in await workflow.list(held_by_id=teacher_id)] == [held.id]
    assert len(await workflow.list(status=IncomeStatus.PENDING)) == 1


async def test_editing_confirmed_income_rewrites_the_credit_in_place(db_session, admin_id, teacher_id, staff_id):
    workflow = IncomeWorkflow(db_session)
    income = await workflow.record("5000", RECEIVED, teacher_id, held_by_id=teacher_id, category="Fees")
    income_id = income.id
    await workflow.confirm(income_id, admin_id)
    await TransferService(db_session).create(teacher_id, staff_id, "1000", RECEIVED, None, admin_id)
    ledger = LedgerService(db_session)
    credit_id = (await ledger.entries_for_reference(LedgerReference.income(income_id)))[0].id

    edited = await workflow.update(income_id, admin_id, amount="4000", description="Batch B fees")

    assert edited.amount == Decimal("4000.00")
    assert edited.status == IncomeStatus.CONFIRMED
    rows = await ledger.entries_for_holder(teacher_id)
    assert rows[0].id == credit_id
    assert rows[0].new_balance == Decimal("4000.00")
    assert rows[0].description == "Income received: Batch B fees"
    assert rows[1].previous_balance == Decimal("4000.00")
    assert await ledger.current_balance(teacher_id) == Decimal("3000.00")
    assert await ledger.verify_chain(teacher_id) == []

    audit = (await db_session.execute(
        select(AuditLog).where(AuditLog.action == "INCOME_UPDATED")
    )).scalars().one()
    assert audit.before_snapshot["amount"] == "5000.00"
    assert audit.after_snapshot["amount"] == "4000.00"


async def test_editing_pending_income_posts_nothing(db_session, admin_id, teacher_id):
    workflow = IncomeWorkflow(db_session)
    income = await workflow.record("300", RECEIVED, teacher_id, held_by_id=teacher_id)
    income_id = income.id

    edited = await workflow.update(income_id, admin_id, amount="350", category="Books")

    assert (edited.amount, edited.category, edited.status) == (Decimal("350.00"), "Books", IncomeStatus.PENDING)
    assert await LedgerService(db_session).entries_for_holder(teacher_id) == []

    with pytest.raises(InvalidAmountError):
        await workflow.update(income_id, admin_id, amount="0")


async def test_rejected_income_cannot_be_edited(db_session, admin_id):
    workflow = IncomeWorkflow(db_session)
    income = await workflow.record("10", RECEIVED, admin_id)
    income_id = income.id
    await workflow.reject(income_id, admin_id)

    with pytest.raises(InvalidTransitionError):
        await workflow.update(income_id, admin_id, amount="20")
    assert (await workflow.get(income_id)).amount == Decimal("10.00")


async def test_delete_income_only_before_confirmation(db_session, admin_id, teacher_id):
    workflow = IncomeWorkflow(db_session)
    pending = await workflow.record("10", RECEIVED, admin_id)
    pending_id = pending.id
    rejected = await workflow.record("20", RECEIVED, admin_id)
    rejected_id = rejected.id
    await workflow.reject(rejected_id, admin_id)
    confirmed = await workflow.record("30", RECEIVED, admin_id, held_by_id=teacher_id)
    confirmed_id = confirmed.id
    await workflow.confirm(confirmed_id, admin_id)

    snapshot = await workflow.delete(pending_id, admin_id)
    await workflow.delete(rejected_id, admin_id)

    assert snapshot["amount"] == "10.00"
    with pytest.raises(ResourceNotFoundError):
        await workflow.get(pending_id)
    with pytest.raises(ResourceNotFoundError):
        await workflow.get(rejected_id)

    with pytest.raises(InvalidTransitionError):
        await workflow.delete(confirmed_id, admin_id)
    assert (await workflow.get(confirmed_id)).status == IncomeStatus.CONFIRMED
    assert await LedgerService(db_session).current_balance(teacher_id) == Decimal("30.00")

    deleted = (await db_session.execute(
        select(AuditLog.entity_id).where(AuditLog.action == "INCOME_DELETED")
    )).scalars().all()
    assert sorted(deleted) == sorted([pending_id, rejected_id])
