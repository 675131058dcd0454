"""
Income Approval Workflow (Domain Logic).

States: PENDING -> CONFIRMED (terminal) | PENDING -> REJECTED (terminal).
Confirming a cash income credits the float of the holder recorded in
held_by_id. There is no transition out of CONFIRMED or REJECTED.

Pending and confirmed income can be edited; an edit of a posted income
rewrites its credit in place. Only pending or rejected income can be deleted.
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
from institute_finance.app.db.transaction import atomic
from institute_finance.app.domain.ledger.ledger_service import LedgerService, PlannedEntry
from institute_finance.app.domain.ledger.recompute import to_money
from institute_finance.app.domain.ledger.reference import LedgerReference
from institute_finance.app.models.finance_enums import (
    IncomeStatus, IncomeType, IncomeSource, PaymentMethod, LedgerTransactionType,
)
from institute_finance.app.models.income import Income
from institute_finance.app.services.audit import log_event, snapshot, AuditAction
from institute_finance.app.services.event_publisher import EventPublisher, FinanceEvent, balance_events
from institute_finance.app.services.holder_locking import HolderLockManager, lock_holder_rows

logger = logging.getLogger("institute_finance.income")

_UNSET = object()


def posts_to_float(income: Income) -> bool:
    """Only cash that a named holder physically keeps enters the float ledger."""
    return income.held_by_id is not None and income.payment_method == PaymentMethod.CASH


def ledger_description(income: Income) -> str:
    return f"Income received: {income.description or income.category or income.income_type.value}"


class IncomeWorkflow:

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

    async def get(self, income_id: int) -> Income:
        income = await self.db.get(Income, income_id, populate_existing=True)
        if income is None:
            raise ResourceNotFoundError("Income", income_id)
        return income

    async def list(
        self,
        status: Optional[IncomeStatus] = None,
        employee_id: Optional[int] = None,
        held_by_id: Optional[int] = None,
        income_type: Optional[IncomeType] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Income]:
        query = select(Income)
        if status:
            query = query.where(Income.status == status)
        if employee_id is not None:
            query = query.where(Income.employee_id == employee_id)
        if held_by_id is not None:
            query = query.where(Income.held_by_id == held_by_id)
        if income_type:
            query = query.where(Income.income_type == income_type)
        if from_date and to_date:
            query = query.where(Income.income_date.between(from_date, to_date))
        query = query.order_by(Income.income_date.desc(), Income.id.desc()).offset(offset).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def record(
        self,
        amount,
        income_date: date,
        actor_id: Optional[int],
        income_type: IncomeType = IncomeType.OTHER,
        source_type: IncomeSource = IncomeSource.INSTITUTE,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        employee_id: Optional[int] = None,
        contributor_id: Optional[int] = None,
        held_by_id: Optional[int] = None,
        category: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Income:
        """Create a PENDING income. No ledger effect until confirmed."""
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmountError(amount)

        async with atomic(self.db):
            for holder_id in (employee_id, contributor_id, held_by_id):
                if holder_id is not None:
                    await self.ledger.get_holder(holder_id)

            income = Income(
                employee_id=employee_id,
                income_type=income_type,
                source_type=source_type,
                contributor_id=contributor_id,
                held_by_id=held_by_id,
                payment_method=payment_method,
                category=category,
                amount=amount,
                income_date=income_date,
                description=description,
                status=IncomeStatus.PENDING,
                created_by=actor_id,
            )
            self.db.add(income)
            await self.db.flush()
            await log_event(
                self.db, AuditAction.INCOME_RECORDED, "income", income.id,
                actor_id=actor_id, after=snapshot(income),
            )

        logger.info("Income recorded", extra={"income_id": income.id, "amount": str(amount)})
        return income

    async def confirm(self, income_id: int, approver_id: int) -> Income:
        """
        PENDING -> CONFIRMED, crediting the holding holder's float for cash.

        Raises:
            InvalidTransitionError: income is not PENDING (never double-posts)
        """
        current = await self.get(income_id)
        holder_ids = [current.held_by_id] if posts_to_float(current) else []

        async with self.locks.hold(holder_ids):
            async with atomic(self.db):
                await lock_holder_rows(self.db, holder_ids)
                income = await self.get(income_id)
                if income.status != IncomeStatus.PENDING:
                    raise InvalidTransitionError("Income", income_id, income.status.value, IncomeStatus.CONFIRMED.value)

                before = snapshot(income)
                balances = {}
                if posts_to_float(income):
                    entry = await self.ledger.append(
                        income.held_by_id,
                        LedgerTransactionType.CREDIT,
                        income.amount,
                        LedgerReference.income(income.id),
                        ledger_description(income),
                        approver_id,
                        income.income_date,
                    )
                    balances[entry.holder_id] = entry.new_balance

                income.status = IncomeStatus.CONFIRMED
                income.confirmed_by = approver_id
                await self.db.flush()

                after = snapshot(income)
                await log_event(
                    self.db, AuditAction.INCOME_CONFIRMED, "income", income.id,
                    actor_id=approver_id, before=before, after=after,
                )

        logger.info("Income confirmed", extra={"income_id": income_id, "posted": bool(balances)})
        await self.events.publish_all(
            [(FinanceEvent.INCOME_CONFIRMED, {"income_id": income_id, "amount": after["amount"],
                                              "held_by_id": after["held_by_id"]})]
            + balance_events(balances)
        )
        return income

    async def reject(self, income_id: int, approver_id: int, reason: Optional[str] = None) -> Income:
        """PENDING -> REJECTED. Never touches the ledger."""
        async with atomic(self.db):
            income = await self.get(income_id)
            if income.status != IncomeStatus.PENDING:
                raise InvalidTransitionError("Income", income_id, income.status.value, IncomeStatus.REJECTED.value)

            before = snapshot(income)
            income.status = IncomeStatus.REJECTED
            income.notes = reason or "Rejected by manager"
            await self.db.flush()
            await log_event(
                self.db, AuditAction.INCOME_REJECTED, "income", income.id,
                actor_id=approver_id, before=before, after=snapshot(income),
            )

        logger.info("Income rejected", extra={"income_id": income_id})
        await self.events.publish(FinanceEvent.INCOME_REJECTED, {"income_id": income_id})
        return income

    async def update(
        self,
        income_id: int,
        actor_id: Optional[int],
        amount=None,
        income_date: Optional[date] = None,
        category=_UNSET,
        description=_UNSET,
    ) -> Income:
        """
        Edit a pending or confirmed income.

        When the income has already been credited to a float, the credit row is
        rewritten in place and the holder's later balances are recomputed.

        Raises:
            InvalidAmountError: amount <= 0
            InvalidTransitionError: the income was rejected
        """
        if amount is not None:
            amount = to_money(amount)
            if amount <= 0:
                raise InvalidAmountError(amount)

        current = await self.get(income_id)
        holder_ids = [current.held_by_id] if posts_to_float(current) else []

        async with self.locks.hold(holder_ids):
            async with atomic(self.db):
                await lock_holder_rows(self.db, holder_ids)
                income = await self.get(income_id)
                if income.status == IncomeStatus.REJECTED:
                    raise InvalidTransitionError("Income", income_id, income.status.value, "edited")

                reference = LedgerReference.income(income.id)
                posted = await self.ledger.entries_for_reference(reference)
                if any(row.holder_id not in holder_ids for row in posted):
                    raise ConcurrencyConflictError(
                        f"Income {income_id} changed while waiting for locks",
                        details={"income_id": income_id},
                    )

                before = snapshot(income)
                if amount is not None:
                    income.amount = amount
                if income_date is not None:
                    income.income_date = income_date
                if category is not _UNSET:
                    income.category = category
                if description is not _UNSET:
                    income.description = description
                await self.db.flush()

                balances = {}
                if posted:
                    affected = await self.ledger.replace_reference_entries(reference, [
                        PlannedEntry(
                            holder_id=income.held_by_id,
                            transaction_type=LedgerTransactionType.CREDIT,
                            amount=income.amount,
                            description=ledger_description(income),
                            entry_date=income.income_date,
                        )
                    ])
                    await self.ledger.recompute_affected(affected)
                    balances = await self.ledger.balances(affected)

                after = snapshot(income)
                await log_event(
                    self.db, AuditAction.INCOME_UPDATED, "income", income.id,
                    actor_id=actor_id, before=before, after=after,
                )

        logger.info("Income updated", extra={"income_id": income_id, "reposted": bool(posted)})
        await self.events.publish_all(
            [(FinanceEvent.INCOME_UPDATED, {"income_id": income_id, "amount": after["amount"],
                                            "status": after["status"]})]
            + balance_events(balances)
        )
        return income

    async def delete(self, income_id: int, actor_id: Optional[int]) -> dict:
        """
        Delete a pending or rejected income. Confirmed income stays on record.

        Returns:
            Snapshot of the deleted income
        """
        async with atomic(self.db):
            income = await self.get(income_id)
            if income.status == IncomeStatus.CONFIRMED:
                raise InvalidTransitionError("Income", income_id, income.status.value, "deleted")

            before = snapshot(income)
            await self.db.delete(income)
            await self.db.flush()
            await log_event(
                self.db, AuditAction.INCOME_DELETED, "income", income_id,
                actor_id=actor_id, before=before,
            )

        logger.info("Income deleted", extra={"income_id": income_id})
        await self.events.publish(FinanceEvent.INCOME_DELETED, {"income_id": income_id})
        return before

    async def report(self, from_date: Optional[date] = None, to_date: Optional[date] = None) -> dict:
        """Confirmed income: total and per-category breakdown."""
        query = select(
            Income.category, func.sum(Income.amount).label("total"), func.count(Income.id).label("count")
        ).where(Income.status == IncomeStatus.CONFIRMED)
        if from_date and to_date:
            query = query.where(Income.income_date.between(from_date, to_date))
        result = await self.db.execute(query.group_by(Income.category).order_by(Income.category))

        by_category = [
            {"category": row.category, "total": to_money(row.total or 0), "count": row.count}
            for row in result.all()
        ]
        total = sum((item["total"] for item in by_category), Decimal("0.00"))
        return {"total_income": to_money(total), "by_category": by_category}
