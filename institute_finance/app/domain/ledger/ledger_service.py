"""
Ledger Service (Domain Logic).

Owns the per-holder float chain: current balance, append, history, in-place
replacement of the rows tied to a reference, and forward recomputation.
Methods only flush; the calling operation owns the transaction.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from institute_finance.app.core.config import settings
from institute_finance.app.core.exceptions import (
    InvalidAmountError, DebitExceedsBalanceError, HolderNotFoundError, HolderInactiveError,
)
from institute_finance.app.db.transaction import atomic
from institute_finance.app.domain.ledger.recompute import (
    ZERO, ChainViolation, apply_entry, find_violations, recompute_chain, to_money,
)
from institute_finance.app.domain.ledger.reference import LedgerReference
from institute_finance.app.models.finance_enums import LedgerTransactionType
from institute_finance.app.models.holder import Holder
from institute_finance.app.models.ledger_entry import LedgerEntry
from institute_finance.app.services.audit import log_event, snapshot, AuditAction
from institute_finance.app.services.event_publisher import EventPublisher, balance_events
from institute_finance.app.services.holder_locking import HolderLockManager, holder_locks, lock_holder_rows

logger = logging.getLogger("institute_finance.ledger")


@dataclass
class PlannedEntry:
    """A ledger row to be written for a reference (before balances are known)."""
    holder_id: int
    transaction_type: LedgerTransactionType
    amount: Decimal
    description: Optional[str]
    entry_date: date
    created_by: Optional[int] = None


class LedgerService:
    """Per-holder float ledger bound to one session."""

    def __init__(
        self,
        db: AsyncSession,
        locks: Optional[HolderLockManager] = None,
        events: Optional[EventPublisher] = None,
    ):
        self.db = db
        self.locks = locks or holder_locks
        self.events = events or EventPublisher()

    # Holders

    async def get_holder(self, holder_id: int, require_active: bool = False) -> Holder:
        """
        Fetch a holder.

        Raises:
            HolderNotFoundError: Unknown holder
            HolderInactiveError: require_active and the holder is retired
        """
        holder = await self.db.get(Holder, holder_id)
        if holder is None:
            raise HolderNotFoundError(holder_id)
        if require_active and not holder.is_active:
            raise HolderInactiveError(holder_id)
        return holder

    # Reads

    async def current_balance(self, holder_id: int) -> Decimal:
        """new_balance of the holder's most recently created entry, or zero."""
        result = await self.db.execute(
            select(LedgerEntry.new_balance)
            .where(LedgerEntry.holder_id == holder_id)
            .order_by(LedgerEntry.id.desc())
            .limit(1)
        )
        balance = result.scalar_one_or_none()
        return to_money(balance) if balance is not None else ZERO

    async def balances(self, holder_ids: Iterable[int]) -> Dict[int, Decimal]:
        """Current balance for each holder id."""
        return {holder_id: await self.current_balance(holder_id) for holder_id in sorted(set(holder_ids))}

    async def entries_for_holder(self, holder_id: int) -> List[LedgerEntry]:
        """Full history of one holder, insertion order (oldest first)."""
        result = await self.db.execute(
            select(LedgerEntry)
            .where(LedgerEntry.holder_id == holder_id)
            .order_by(LedgerEntry.id)
        )
        return list(result.scalars().all())

    async def entries_for_reference(self, reference: LedgerReference) -> List[LedgerEntry]:
        """Rows produced by one transfer/income/expense, insertion order."""
        query = select(LedgerEntry).where(LedgerEntry.reference_type == reference.kind)
        if reference.id is None:
            query = query.where(LedgerEntry.reference_id.is_(None))
        else:
            query = query.where(LedgerEntry.reference_id == reference.id)
        result = await self.db.execute(query.order_by(LedgerEntry.id))
        return list(result.scalars().all())

    async def verify_chain(self, holder_id: int) -> List[ChainViolation]:
        """Entries of the holder that break the chain invariant (empty when healthy)."""
        return find_violations(await self.entries_for_holder(holder_id))

    # Writes

    async def append(
        self,
        holder_id: int,
        kind: LedgerTransactionType,
        amount,
        reference: LedgerReference,
        description: Optional[str],
        created_by: Optional[int],
        entry_date: date,
    ) -> LedgerEntry:
        """
        Append one entry as the logically-last row of the holder's chain.

        Caller must hold the holder's lock and own the transaction.

        Raises:
            InvalidAmountError: amount <= 0
            HolderNotFoundError / HolderInactiveError: bad holder
            DebitExceedsBalanceError: negative float forbidden and debit overdraws
        """
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmountError(amount)

        await self.get_holder(holder_id, require_active=True)

        previous_balance = await self.current_balance(holder_id)
        new_balance = apply_entry(kind, previous_balance, amount)
        if new_balance < 0 and kind == LedgerTransactionType.DEBIT and not settings.allow_negative_float:
            raise DebitExceedsBalanceError(holder_id, previous_balance, amount)

        entry = LedgerEntry(
            holder_id=holder_id,
            transaction_type=kind,
            amount=amount,
            previous_balance=previous_balance,
            new_balance=new_balance,
            reference_type=reference.kind,
            reference_id=reference.id,
            description=description,
            created_by=created_by,
            entry_date=entry_date,
        )
        self.db.add(entry)
        await self.db.flush()

        logger.info(
            "Ledger entry appended",
            extra={
                "holder_id": holder_id,
                "entry_id": entry.id,
                "kind": kind.value,
                "amount": str(amount),
                "reference": str(reference),
                "new_balance": str(new_balance),
            },
        )
        return entry

    async def replace_reference_entries(
        self,
        reference: LedgerReference,
        new_entries: Sequence[PlannedEntry],
    ) -> Dict[int, int]:
        """
        Swap the rows tied to ``reference`` for ``new_entries``, in place.

        Existing rows are rewritten keeping their id, so each replacement
        keeps its original position in the insertion sequence. Rows are
        paired by transaction type; leftover old rows are deleted and
        leftover new rows are inserted at the end. Balances are left for
        recompute_holder().

        Returns:
            holder id -> smallest entry id from which that holder's chain
            must be recomputed (only holders whose balances can change)
        """
        old_rows = await self.entries_for_reference(reference)
        unmatched = list(old_rows)
        affected: Dict[int, int] = {}

        def touch(holder_id: int, entry_id: int):
            current = affected.get(holder_id)
            affected[holder_id] = entry_id if current is None else min(current, entry_id)

        inserted: List[LedgerEntry] = []
        for planned in new_entries:
            amount = to_money(planned.amount)
            if amount <= 0:
                raise InvalidAmountError(amount)

            row = next((r for r in unmatched if r.transaction_type == planned.transaction_type), None)
            if row is None and unmatched:
                row = unmatched[0]

            if row is None:
                row = LedgerEntry(
                    holder_id=planned.holder_id,
                    transaction_type=planned.transaction_type,
                    amount=amount,
                    previous_balance=ZERO,
                    new_balance=ZERO,
                    reference_type=reference.kind,
                    reference_id=reference.id,
                    description=planned.description,
                    created_by=planned.created_by,
                    entry_date=planned.entry_date,
                )
                self.db.add(row)
                inserted.append(row)
                continue

            unmatched.remove(row)
            balance_relevant = (
                row.holder_id != planned.holder_id
                or row.transaction_type != planned.transaction_type
                or to_money(row.amount) != amount
            )
            if balance_relevant:
                touch(row.holder_id, row.id)
                touch(planned.holder_id, row.id)

            row.holder_id = planned.holder_id
            row.transaction_type = planned.transaction_type
            row.amount = amount
            row.description = planned.description
            row.entry_date = planned.entry_date
            if planned.created_by is not None:
                row.created_by = planned.created_by

        for row in unmatched:
            touch(row.holder_id, row.id)
            await self.db.delete(row)

        await self.db.flush()
        for row in inserted:
            touch(row.holder_id, row.id)

        logger.debug(
            "Reference entries replaced",
            extra={"reference": str(reference), "rewritten": len(old_rows) - len(unmatched),
                   "deleted": len(unmatched), "inserted": len(inserted)},
        )
        return affected

    async def recompute_holder(self, holder_id: int, from_entry_id: Optional[int] = None) -> int:
        """
        Forward walk of one holder's chain from ``from_entry_id`` to the end.

        Rows before the pivot are trusted; the walk starts from the
        new_balance of the last of them. Only rows whose balances change are
        written.

        Returns:
            Number of rows rewritten
        """
        opening = ZERO
        query = select(LedgerEntry).where(LedgerEntry.holder_id == holder_id)

        if from_entry_id is not None:
            result = await self.db.execute(
                select(LedgerEntry.new_balance)
                .where(LedgerEntry.holder_id == holder_id, LedgerEntry.id < from_entry_id)
                .order_by(LedgerEntry.id.desc())
                .limit(1)
            )
            previous = result.scalar_one_or_none()
            if previous is not None:
                opening = to_money(previous)
            query = query.where(LedgerEntry.id >= from_entry_id)

        result = await self.db.execute(query.order_by(LedgerEntry.id))
        entries = list(result.scalars().all())

        changed, closing = recompute_chain(entries, opening)

        if not settings.allow_negative_float:
            for entry in entries:
                if entry.new_balance < 0:
                    raise DebitExceedsBalanceError(holder_id, entry.previous_balance, entry.amount)

        await self.db.flush()

        logger.debug(
            "Chain recomputed",
            extra={"holder_id": holder_id, "from_entry_id": from_entry_id,
                   "walked": len(entries), "rewritten": len(changed), "closing": str(closing)},
        )
        return len(changed)

    async def recompute_affected(self, affected: Dict[int, int]) -> int:
        """Recompute every holder in a replace_reference_entries() result."""
        rewritten = 0
        for holder_id in sorted(affected):
            rewritten += await self.recompute_holder(holder_id, affected[holder_id])
        return rewritten

    # Operations

    async def post_manual_adjustment(
        self,
        holder_id: int,
        kind: LedgerTransactionType,
        amount,
        description: str,
        actor_id: int,
        entry_date: date,
    ) -> LedgerEntry:
        """
        Manual credit/debit of a holder's float (cash count correction).

        Runs as its own locked, atomic unit.
        """
        if to_money(amount) <= 0:
            raise InvalidAmountError(amount)

        async with self.locks.hold([holder_id]):
            async with atomic(self.db):
                await lock_holder_rows(self.db, [holder_id])
                entry = await self.append(
                    holder_id, kind, amount, LedgerReference.manual(),
                    description, actor_id, entry_date,
                )
                await log_event(
                    self.db, AuditAction.LEDGER_ADJUSTED, "ledger_entry", entry.id,
                    actor_id=actor_id, after=snapshot(entry),
                )
                new_balance = entry.new_balance

        await self.events.publish_all(balance_events({holder_id: new_balance}))
        return entry
