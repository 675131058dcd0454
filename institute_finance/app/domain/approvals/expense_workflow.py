"""
Expense Approval Workflow (Domain Logic).

Two orthogonal axes on one record:
- approval: PENDING -> APPROVED | REJECTED
- reimbursement (once APPROVED): PENDING -> REIMBURSED | CANCELLED

Approving an institute_float expense debits the float holder. Reimbursement
is bookkeeping only: the approval debit already represents the outflow.

Only pending expenses can be edited. Deleting an approved, unreimbursed
expense removes its float debit.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from institute_finance.app.core.exceptions import (
    ConcurrencyConflictError, InvalidAmountError, InvalidTransitionError, ResourceNotFoundError,
)
from institute_finance.app.db.session import utcnow
from institute_finance.app.db.transaction import atomic
from institute_finance.app.domain.ledger.ledger_service import LedgerService
from institute_finance.app.domain.ledger.recompute import to_money
from institute_finance.app.domain.ledger.reference import LedgerReference
from institute_finance.app.models.expense import Expense
from institute_finance.app.models.finance_enums import (
    ExpenseStatus, ReimbursementStatus, ExpenseType, PaidFrom, LedgerTransactionType,
)
from institute_finance.app.services.audit import log_event, snapshot, AuditAction
from institute_finance.app.services.event_publisher import EventPublisher, FinanceEvent, balance_events
from institute_finance.app.services.holder_locking import HolderLockManager, lock_holder_rows

logger = logging.getLogger("institute_finance.expense")

_UNSET = object()


def float_holder_for(expense: Expense, approver_id: int) -> Optional[int]:
    """Holder whose float pays for the expense (None for personal money)."""
    if expense.paid_from != PaidFrom.INSTITUTE_FLOAT:
        return None
    return expense.float_holder_id if expense.float_holder_id is not None else approver_id


class ExpenseWorkflow:

    def __init__(
        self,
        db: AsyncSession,
        locks: Optional[HolderLockManager] = None,
        events: Optional[EventPublisher] = None,
    ):
        self.db = db
        self.ledger = LedgerService(db, locks=locks, events=events)
        self.locks = self.ledger.locks
        self.events = self.ledger.events

    async def get(self, expense_id: int) -> Expense:
        expense = await self.db.get(Expense, expense_id, populate_existing=True)
        if expense is None:
            raise ResourceNotFoundError("Expense", expense_id)
        return expense

    async def list(
        self,
        status: Optional[ExpenseStatus] = None,
        employee_id: Optional[int] = None,
        expense_type: Optional[ExpenseType] = None,
        category: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Expense]:
        query = select(Expense)
        if status:
            query = query.where(Expense.status == status)
        if employee_id is not None:
            query = query.where(Expense.employee_id == employee_id)
        if expense_type:
            query = query.where(Expense.expense_type == expense_type)
        if category:
            query = query.where(Expense.category == category)
        if from_date and to_date:
            query = query.where(Expense.expense_date.between(from_date, to_date))
        query = query.order_by(Expense.expense_date.desc(), Expense.id.desc()).offset(offset).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def record(
        self,
        employee_id: int,
        category: str,
        amount,
        expense_date: date,
        actor_id: Optional[int],
        expense_type: ExpenseType = ExpenseType.INSTITUTE,
        paid_from: PaidFrom = PaidFrom.INSTITUTE_FLOAT,
        float_holder_id: Optional[int] = None,
        description: Optional[str] = None,
    ) -> Expense:
        """Create a PENDING expense. No ledger effect until approved."""
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmountError(amount)

        async with atomic(self.db):
            await self.ledger.get_holder(employee_id)
            if float_holder_id is not None:
                await self.ledger.get_holder(float_holder_id)

            expense = Expense(
                employee_id=employee_id,
                expense_type=expense_type,
                category=category,
                amount=amount,
                description=description,
                expense_date=expense_date,
                paid_from=paid_from,
                float_holder_id=float_holder_id,
                status=ExpenseStatus.PENDING,
                reimbursement_status=ReimbursementStatus.PENDING,
                created_by=actor_id,
            )
            self.db.add(expense)
            await self.db.flush()
            await log_event(
                self.db, AuditAction.EXPENSE_RECORDED, "expense", expense.id,
                actor_id=actor_id, after=snapshot(expense),
            )

        logger.info("Expense recorded", extra={"expense_id": expense.id, "amount": str(amount)})
        return expense

    async def approve(self, expense_id: int, approver_id: int) -> Expense:
        """
        Approval PENDING -> APPROVED; debits the float holder for institute_float.

        Raises:
            InvalidTransitionError: not PENDING (never double-posts)
        """
        current = await self.get(expense_id)
        holder_id = float_holder_for(current, approver_id)
        holder_ids = [holder_id] if holder_id is not None else []

        async with self.locks.hold(holder_ids):
            async with atomic(self.db):
                await lock_holder_rows(self.db, holder_ids)
                expense = await self.get(expense_id)
                if expense.status != ExpenseStatus.PENDING:
                    raise InvalidTransitionError("Expense", expense_id, expense.status.value, ExpenseStatus.APPROVED.value)

                before = snapshot(expense)
                balances = {}
                if holder_id is not None:
                    entry = await self.ledger.append(
                        holder_id,
                        LedgerTransactionType.DEBIT,
                        expense.amount,
                        LedgerReference.expense(expense.id),
                        f"Expense: {expense.category}",
                        approver_id,
                        expense.expense_date,
                    )
                    balances[holder_id] = entry.new_balance
                    expense.float_holder_id = holder_id

                expense.status = ExpenseStatus.APPROVED
                expense.approved_by = approver_id
                expense.approval_date = utcnow()
                expense.reimbursement_status = ReimbursementStatus.PENDING
                await self.db.flush()

                after = snapshot(expense)
                await log_event(
                    self.db, AuditAction.EXPENSE_APPROVED, "expense", expense.id,
                    actor_id=approver_id, before=before, after=after,
                )

        logger.info("Expense approved", extra={"expense_id": expense_id, "posted": bool(balances)})
        await self.events.publish_all(
            [(FinanceEvent.EXPENSE_APPROVED, {"expense_id": expense_id, "amount": after["amount"],
                                              "float_holder_id": after["float_holder_id"]})]
            + balance_events(balances)
        )
        return expense

    async def reject(self, expense_id: int, approver_id: int, reason: Optional[str] = None) -> Expense:
        """Approval PENDING -> REJECTED. Never touches the ledger."""
        async with atomic(self.db):
            expense = await self.get(expense_id)
            if expense.status != ExpenseStatus.PENDING:
                raise InvalidTransitionError("Expense", expense_id, expense.status.value, ExpenseStatus.REJECTED.value)

            before = snapshot(expense)
            expense.status = ExpenseStatus.REJECTED
            expense.approved_by = approver_id
            expense.approval_date = utcnow()
            expense.notes = reason or "Rejected by manager"
            await self.db.flush()
            await log_event(
                self.db, AuditAction.EXPENSE_REJECTED, "expense", expense.id,
                actor_id=approver_id, before=before, after=snapshot(expense),
            )

        logger.info("Expense rejected", extra={"expense_id": expense_id})
        await self.events.publish(FinanceEvent.EXPENSE_REJECTED, {"expense_id": expense_id})
        return expense

    async def _close_reimbursement(
        self, expense_id: int, actor_id: int, target: ReimbursementStatus, action: str, event_type: str
    ) -> Expense:
        async with atomic(self.db):
            expense = await self.get(expense_id)
            if expense.status != ExpenseStatus.APPROVED or expense.reimbursement_status != ReimbursementStatus.PENDING:
                current = f"{expense.status.value}/{expense.reimbursement_status.value}"
                raise InvalidTransitionError("Expense", expense_id, current, target.value)

            before = snapshot(expense)
            expense.reimbursement_status = target
            if target == ReimbursementStatus.REIMBURSED:
                expense.reimbursement_date = utcnow()
            await self.db.flush()
            await log_event(
                self.db, action, "expense", expense.id,
                actor_id=actor_id, before=before, after=snapshot(expense),
            )

        logger.info("Expense reimbursement closed", extra={"expense_id": expense_id, "status": target.value})
        await self.events.publish(event_type, {"expense_id": expense_id, "reimbursement_status": target.value})
        return expense

    async def reimburse(self, expense_id: int, actor_id: int) -> Expense:
        """Reimbursement PENDING -> REIMBURSED (approved expenses only). No ledger entry."""
        return await self._close_reimbursement(
            expense_id, actor_id, ReimbursementStatus.REIMBURSED,
            AuditAction.EXPENSE_REIMBURSED, FinanceEvent.EXPENSE_REIMBURSED,
        )

    async def cancel_reimbursement(self, expense_id: int, actor_id: int) -> Expense:
        """Reimbursement PENDING -> CANCELLED (approved expenses only). No ledger entry."""
        return await self._close_reimbursement(
            expense_id, actor_id, ReimbursementStatus.CANCELLED,
            AuditAction.EXPENSE_REIMBURSEMENT_CANCELLED, FinanceEvent.EXPENSE_REIMBURSEMENT_CANCELLED,
        )

    async def update(
        self,
        expense_id: int,
        actor_id: Optional[int],
        amount=None,
        expense_date: Optional[date] = None,
        category: Optional[str] = None,
        expense_type: Optional[ExpenseType] = None,
        paid_from: Optional[PaidFrom] = None,
        float_holder_id=_UNSET,
        description=_UNSET,
    ) -> Expense:
        """Edit a PENDING expense. Nothing is posted yet, so the ledger is untouched."""
        if amount is not None:
            amount = to_money(amount)
            if amount <= 0:
                raise InvalidAmountError(amount)

        async with atomic(self.db):
            expense = await self.get(expense_id)
            if expense.status != ExpenseStatus.PENDING:
                raise InvalidTransitionError("Expense", expense_id, expense.status.value, "edited")
            if float_holder_id is not _UNSET and float_holder_id is not None:
                await self.ledger.get_holder(float_holder_id)

            before = snapshot(expense)
            if amount is not None:
                expense.amount = amount
            if expense_date is not None:
                expense.expense_date = expense_date
            if category is not None:
                expense.category = category
            if expense_type is not None:
                expense.expense_type = expense_type
            if paid_from is not None:
                expense.paid_from = paid_from
            if float_holder_id is not _UNSET:
                expense.float_holder_id = float_holder_id
            if description is not _UNSET:
                expense.description = description
            await self.db.flush()

            after = snapshot(expense)
            await log_event(
                self.db, AuditAction.EXPENSE_UPDATED, "expense", expense.id,
                actor_id=actor_id, before=before, after=after,
            )

        logger.info("Expense updated", extra={"expense_id": expense_id})
        await self.events.publish(FinanceEvent.EXPENSE_UPDATED, {"expense_id": expense_id, "amount": after["amount"]})
        return expense

    async def delete(self, expense_id: int, actor_id: Optional[int]) -> dict:
        """
        Delete an expense that has not been reimbursed.

        An approved expense's float debit is removed and the holder's later
        balances are recomputed.

        Raises:
            InvalidTransitionError: the expense was already reimbursed
        """
        current = await self.get(expense_id)
        holder_ids = [current.float_holder_id] if current.float_holder_id is not None else []

        async with self.locks.hold(holder_ids):
            async with atomic(self.db):
                await lock_holder_rows(self.db, holder_ids)
                expense = await self.get(expense_id)
                if expense.reimbursement_status == ReimbursementStatus.REIMBURSED:
                    current_state = f"{expense.status.value}/{expense.reimbursement_status.value}"
                    raise InvalidTransitionError("Expense", expense_id, current_state, "deleted")

                reference = LedgerReference.expense(expense.id)
                posted = await self.ledger.entries_for_reference(reference)
                if any(row.holder_id not in holder_ids for row in posted):
                    raise ConcurrencyConflictError(
                        f"Expense {expense_id} changed while waiting for locks",
                        details={"expense_id": expense_id},
                    )

                before = snapshot(expense)
                affected = await self.ledger.replace_reference_entries(reference, [])
                await self.ledger.recompute_affected(affected)

                await self.db.delete(expense)
                await self.db.flush()
                await log_event(
                    self.db, AuditAction.EXPENSE_DELETED, "expense", expense_id,
                    actor_id=actor_id, before=before,
                )
                balances = await self.ledger.balances(affected)

        logger.info("Expense deleted", extra={"expense_id": expense_id, "reverted": bool(posted)})
        await self.events.publish_all(
            [(FinanceEvent.EXPENSE_DELETED, {"expense_id": expense_id})] + balance_events(balances)
        )
        return before

    async def pending_reimbursements(self) -> dict:
        """Approved expenses still awaiting reimbursement, oldest first, with their total."""
        result = await self.db.execute(
            select(Expense)
            .where(Expense.status == ExpenseStatus.APPROVED,
                   Expense.reimbursement_status == ReimbursementStatus.PENDING)
            .order_by(Expense.expense_date, Expense.id)
        )
        expenses = list(result.scalars().all())
        total = sum((to_money(expense.amount) for expense in expenses), Decimal("0.00"))
        return {"expenses": expenses, "total_pending": to_money(total)}

    async def report(self, from_date: Optional[date] = None, to_date: Optional[date] = None) -> dict:
        """Approved expenses: total, per-category and per-employee breakdown."""
        filters = [Expense.status == ExpenseStatus.APPROVED]
        if from_date and to_date:
            filters.append(Expense.expense_date.between(from_date, to_date))

        by_category_rows = await self.db.execute(
            select(Expense.category, func.sum(Expense.amount).label("total"), func.count(Expense.id).label("count"))
            .where(*filters).group_by(Expense.category).order_by(Expense.category)
        )
        by_category = [
            {"category": row.category, "total": to_money(row.total or 0), "count": row.count}
            for row in by_category_rows.all()
        ]

        by_employee_rows = await self.db.execute(
            select(Expense.employee_id, func.sum(Expense.amount).label("total"), func.count(Expense.id).label("count"))
            .where(*filters).group_by(Expense.employee_id).order_by(Expense.employee_id)
        )
        by_employee = [
            {"employee_id": row.employee_id, "total": to_money(row.total or 0), "count": row.count}
            for row in by_employee_rows.all()
        ]

        total = sum((item["total"] for item in by_category), Decimal("0.00"))
        return {"total_expense": to_money(total), "by_category": by_category, "by_employee": by_employee}
