"""
Cash transfer tests: symmetry, retroactive edits, deletes and the
income -> transfer -> edit -> delete walkthrough.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from institute_finance.app.core.exceptions import (
    HolderInactiveError, HolderNotFoundError, InvalidAmountError, ResourceNotFoundError, SameHolderError,
)
from institute_finance.app.domain.approvals.income_workflow import IncomeWorkflow
from institute_finance.app.domain.ledger.ledger_service import LedgerService
from institute_finance.app.domain.ledger.reference import LedgerReference
from institute_finance.app.domain.transfers.transfer_service import TransferService
from institute_finance.app.models.audit_log import AuditLog
from institute_finance.app.models.cash_transfer import CashTransfer
from institute_finance.app.models.finance_enums import LedgerTransactionType
from institute_finance.app.models.holder import Holder
from institute_finance.app.services.event_publisher import FinanceEvent

DAY_1 = date(2024, 4, 1)
DAY_2 = date(2024, 4, 2)
DAY_3 = date(2024, 4, 3)


async def fund(db_session, holder_id, amount, actor_id):
    """Give a holder an opening float via a manual adjustment."""
    await LedgerService(db_session).post_manual_adjustment(
        holder_id, LedgerTransactionType.CREDIT, amount, "Opening float", actor_id, DAY_1
    )


async def balances(db_session, *holder_ids):
    ledger = LedgerService(db_session)
    return [await ledger.current_balance(holder_id) for holder_id in holder_ids]


async def test_float_walkthrough(db_session, admin_id, staff_id, publisher):
    """Income 5000 -> transfer 2000 -> edit to 500 -> delete."""
    incomes = IncomeWorkflow(db_session, events=publisher)
    income = await incomes.record("5000", DAY_1, admin_id, held_by_id=admin_id, description="Batch fees")
    await incomes.confirm(income.id, admin_id)
    assert await balances(db_session, admin_id) == [Decimal("5000.00")]

    transfers = TransferService(db_session, events=publisher)
    transfer = await transfers.create(admin_id, staff_id, "2000", DAY_2, None, admin_id)
    transfer_id = transfer.id
    assert await balances(db_session, admin_id, staff_id) == [Decimal("3000.00"), Decimal("2000.00")]

    await transfers.edit(transfer_id, admin_id, amount="500")
    assert await balances(db_session, admin_id, staff_id) == [Decimal("4500.00"), Decimal("500.00")]

    await transfers.delete(transfer_id, admin_id)
    assert await balances(db_session, admin_id, staff_id) == [Decimal("5000.00"), Decimal("0.00")]

    ledger = LedgerService(db_session)
    assert await ledger.verify_chain(admin_id) == []
    assert await ledger.entries_for_holder(staff_id) == []


async def test_transfer_posts_symmetric_pair(db_session, admin_id, staff_id, teacher_id, publisher, redis_client_session):
    await fund(db_session, staff_id, "1000", admin_id)

    transfer = await TransferService(db_session, events=publisher).create(
        staff_id, teacher_id, "350.50", DAY_2, "Bus fuel money", admin_id
    )

    rows = await LedgerService(db_session).entries_for_reference(LedgerReference.transfer(transfer.id))
    assert len(rows) == 2
    debit, credit = rows
    assert (debit.holder_id, debit.transaction_type) == (staff_id, LedgerTransactionType.DEBIT)
    assert (credit.holder_id, credit.transaction_type) == (teacher_id, LedgerTransactionType.CREDIT)
    assert debit.amount == credit.amount == Decimal("350.50")
    assert debit.description == "Transfer to Tara Teacher"
    assert credit.description == "Transfer from Sami Staff"

    created = redis_client_session.events(FinanceEvent.TRANSFER_CREATED)
    assert created[0]["payload"]["transfer_id"] == transfer.id
    changed = redis_client_session.events(FinanceEvent.BALANCE_CHANGED)[-2:]
    assert {e["payload"]["holder_id"]: e["payload"]["balance"] for e in changed} == {
        staff_id: "649.50", teacher_id: "350.50",
    }


async def test_create_validation_happens_before_any_write(db_session, admin_id, staff_id, retired_id):
    transfers = TransferService(db_session)

    with pytest.raises(SameHolderError):
        await transfers.create(staff_id, staff_id, "10", DAY_1, None, admin_id)
    with pytest.raises(InvalidAmountError):
        await transfers.create(admin_id, staff_id, "0", DAY_1, None, admin_id)
    with pytest.raises(InvalidAmountError):
        await transfers.create(admin_id, staff_id, "-1", DAY_1, None, admin_id)
    with pytest.raises(HolderNotFoundError):
        await transfers.create(admin_id, 9999, "10", DAY_1, None, admin_id)
    with pytest.raises(HolderInactiveError):
        await transfers.create(admin_id, retired_id, "10", DAY_1, None, admin_id)

    assert (await db_session.execute(select(CashTransfer))).scalars().all() == []
    assert await balances(db_session, admin_id, staff_id) == [Decimal("0.00"), Decimal("0.00")]


async def test_retroactive_edit_recomputes_later_entries(db_session, admin_id, staff_id, teacher_id):
    transfers = TransferService(db_session)
    await fund(db_session, admin_id, "1000", admin_id)
    first = await transfers.create(admin_id, staff_id, "100", DAY_1, None, admin_id)
    first_id = first.id
    await transfers.create(admin_id, teacher_id, "200", DAY_2, None, admin_id)
    await transfers.create(staff_id, teacher_id, "50", DAY_3, None, admin_id)

    await transfers.edit(first_id, admin_id, amount="300")

    assert await balances(db_session, admin_id, staff_id, teacher_id) == [
        Decimal("500.00"), Decimal("250.00"), Decimal("250.00"),
    ]
    ledger = LedgerService(db_session)
    for holder_id in (admin_id, staff_id, teacher_id):
        assert await ledger.verify_chain(holder_id) == []

    # The edited rows keep their place in each chain
    staff_rows = await ledger.entries_for_holder(staff_id)
    assert [r.reference_id for r in staff_rows][0] == first_id
    assert staff_rows[0].new_balance == Decimal("300.00")
    assert staff_rows[1].previous_balance == Decimal("300.00")


async def test_edit_changing_receiver_moves_the_credit(db_session, admin_id, staff_id, teacher_id):
    transfers = TransferService(db_session)
    await fund(db_session, admin_id, "1000", admin_id)
    transfer = await transfers.create(admin_id, staff_id, "400", DAY_1, None, admin_id)
    transfer_id = transfer.id

    edited = await transfers.edit(transfer_id, admin_id, receiver_id=teacher_id)

    assert edited.receiver_id == teacher_id
    assert await balances(db_session, admin_id, staff_id, teacher_id) == [
        Decimal("600.00"), Decimal("0.00"), Decimal("400.00"),
    ]
    credit = (await LedgerService(db_session).entries_for_reference(LedgerReference.transfer(transfer_id)))[1]
    assert credit.holder_id == teacher_id
    assert credit.description == "Transfer from Asha Admin"


async def test_edit_swapping_direction(db_session, admin_id, staff_id):
    transfers = TransferService(db_session)
    transfer = await transfers.create(admin_id, staff_id, "100", DAY_1, None, admin_id)

    await transfers.edit(transfer.id, admin_id, sender_id=staff_id, receiver_id=admin_id)

    assert await balances(db_session, admin_id, staff_id) == [Decimal("100.00"), Decimal("-100.00")]


async def test_notes_only_edit_leaves_balances_untouched(db_session, admin_id, staff_id):
    transfers = TransferService(db_session)
    await fund(db_session, admin_id, "1000", admin_id)
    transfer = await transfers.create(admin_id, staff_id, "100", DAY_1, "first note", admin_id)
    transfer_id = transfer.id
    ledger = LedgerService(db_session)
    before = [(e.id, e.previous_balance, e.new_balance) for e in await ledger.entries_for_holder(admin_id)]

    edited = await transfers.edit(transfer_id, admin_id, notes="corrected note")

    after = [(e.id, e.previous_balance, e.new_balance) for e in await ledger.entries_for_holder(admin_id)]
    assert edited.notes == "corrected note"
    assert after == before


async def test_edit_rejects_same_holder_and_bad_amount(db_session, admin_id, staff_id):
    transfers = TransferService(db_session)
    transfer = await transfers.create(admin_id, staff_id, "100", DAY_1, None, admin_id)
    transfer_id = transfer.id

    with pytest.raises(SameHolderError):
        await transfers.edit(transfer_id, admin_id, receiver_id=admin_id)
    with pytest.raises(InvalidAmountError):
        await transfers.edit(transfer_id, admin_id, amount="0")

    assert await balances(db_session, admin_id, staff_id) == [Decimal("-100.00"), Decimal("100.00")]


async def test_edit_unknown_transfer(db_session, admin_id):
    with pytest.raises(ResourceNotFoundError):
        await TransferService(db_session).edit(404, admin_id, amount="10")


async def test_delete_restores_every_later_balance(db_session, admin_id, staff_id, teacher_id):
    transfers = TransferService(db_session)
    await fund(db_session, admin_id, "1000", admin_id)
    doomed = await transfers.create(admin_id, staff_id, "100", DAY_1, None, admin_id)
    doomed_id = doomed.id
    await transfers.create(staff_id, teacher_id, "30", DAY_2, None, admin_id)
    await transfers.create(admin_id, teacher_id, "10", DAY_3, None, admin_id)

    snapshot = await transfers.delete(doomed_id, admin_id)

    assert snapshot["id"] == doomed_id
    assert await balances(db_session, admin_id, staff_id, teacher_id) == [
        Decimal("990.00"), Decimal("-30.00"), Decimal("40.00"),
    ]
    assert await db_session.get(CashTransfer, doomed_id) is None
    assert await LedgerService(db_session).entries_for_reference(LedgerReference.transfer(doomed_id)) == []

    audit = (await db_session.execute(
        select(AuditLog).where(AuditLog.action == "TRANSFER_DELETED", AuditLog.entity_id == doomed_id)
    )).scalars().one()
    assert audit.before_snapshot["amount"] == "100.00"
    assert audit.after_snapshot is None


async def test_edit_is_audited_with_before_and_after(db_session, admin_id, staff_id):
    transfers = TransferService(db_session)
    transfer = await transfers.create(admin_id, staff_id, "100", DAY_1, None, admin_id)
    await transfers.edit(transfer.id, admin_id, amount="120", transfer_date=DAY_2)

    audit = (await db_session.execute(
        select(AuditLog).where(AuditLog.action == "TRANSFER_UPDATED")
    )).scalars().one()
    assert audit.actor_id == admin_id
    assert audit.before_snapshot["amount"] == "100.00"
    assert audit.after_snapshot["amount"] == "120.00"
    assert audit.after_snapshot["transfer_date"] == "2024-04-02"


async def test_list_filters_by_party(db_session, admin_id, staff_id, teacher_id):
    transfers = TransferService(db_session)
    await transfers.create(admin_id, staff_id, "1", DAY_1, None, admin_id)
    await transfers.create(staff_id, teacher_id, "2", DAY_2, None, admin_id)
    await transfers.create(admin_id, teacher_id, "3", DAY_3, None, admin_id)

    staff_transfers = await transfers.list(holder_id=staff_id)

    assert [t.amount for t in staff_transfers] == [Decimal("2.00"), Decimal("1.00")]


async def retire(db_session, holder_id):
    holder = await db_session.get(Holder, holder_id)
    holder.is_active = False
    await db_session.commit()


async def test_edit_keeps_working_after_a_party_retires(db_session, admin_id, staff_id, retired_id):
    transfers = TransferService(db_session)
    transfer = await transfers.create(admin_id, staff_id, "100", DAY_1, None, admin_id)
    transfer_id = transfer.id
    await retire(db_session, staff_id)

    edited = await transfers.edit(transfer_id, admin_id, notes="fixed", transfer_date=DAY_2)
    assert edited.notes == "fixed"
    assert await balances(db_session, admin_id, staff_id) == [Decimal("-100.00"), Decimal("100.00")]

    await transfers.edit(transfer_id, admin_id, amount="80")
    assert await balances(db_session, admin_id, staff_id) == [Decimal("-80.00"), Decimal("80.00")]

    # A retired holder still cannot be brought into the transfer
    with pytest.raises(HolderInactiveError):
        await transfers.edit(transfer_id, admin_id, receiver_id=retired_id)
    assert (await transfers.get(transfer_id)).receiver_id == staff_id


async def test_edit_changing_sender_moves_the_debit_mid_chain(db_session, admin_id, staff_id, teacher_id, partner_id):
    transfers = TransferService(db_session)
    await fund(db_session, admin_id, "1000", admin_id)
    await fund(db_session, teacher_id, "500", admin_id)
    transfer = await transfers.create(admin_id, staff_id, "100", DAY_1, None, admin_id)
    transfer_id = transfer.id
    await transfers.create(teacher_id, partner_id, "50", DAY_2, None, admin_id)
    await transfers.create(teacher_id, staff_id, "20", DAY_3, None, admin_id)

    await transfers.edit(transfer_id, admin_id, sender_id=teacher_id, amount="150")

    assert await balances(db_session, admin_id, teacher_id, staff_id, partner_id) == [
        Decimal("1000.00"), Decimal("280.00"), Decimal("170.00"), Decimal("50.00"),
    ]
    ledger = LedgerService(db_session)
    teacher_rows = await ledger.entries_for_holder(teacher_id)
    assert teacher_rows[1].reference_id == transfer_id
    assert (teacher_rows[1].previous_balance, teacher_rows[1].new_balance) == (Decimal("500.00"), Decimal("350.00"))
    assert teacher_rows[1].description == "Transfer to Sami Staff"
    assert teacher_rows[2].previous_balance == Decimal("350.00")
    assert [r.reference_type for r in await ledger.entries_for_holder(admin_id)] == ["manual"]
    for holder_id in (admin_id, teacher_id, staff_id, partner_id):
        assert await ledger.verify_chain(holder_id) == []


async def test_delete_then_recreate_restores_balances(db_session, admin_id, staff_id, teacher_id):
    transfers = TransferService(db_session)
    await fund(db_session, admin_id, "1000", admin_id)
    transfer = await transfers.create(admin_id, staff_id, "250", DAY_2, "Term float", admin_id)
    transfer_id = transfer.id
    await transfers.create(staff_id, teacher_id, "40", DAY_3, None, admin_id)
    with_transfer = await balances(db_session, admin_id, staff_id, teacher_id)
    assert with_transfer == [Decimal("750.00"), Decimal("210.00"), Decimal("40.00")]

    await transfers.delete(transfer_id, admin_id)
    assert await balances(db_session, admin_id, staff_id, teacher_id) == [
        Decimal("1000.00"), Decimal("-40.00"), Decimal("40.00"),
    ]

    await transfers.create(admin_id, staff_id, "250", DAY_2, "Term float", admin_id)
    assert await balances(db_session, admin_id, staff_id, teacher_id) == with_transfer
    ledger = LedgerService(db_session)
    for holder_id in (admin_id, staff_id, teacher_id):
        assert await ledger.verify_chain(holder_id) == []
