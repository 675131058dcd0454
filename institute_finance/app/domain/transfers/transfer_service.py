"""
Cash Transfer Service (Domain Logic).

Creates, edits and deletes peer-to-peer float movements. Each transfer owns
two ledger rows (debit sender, credit receiver). Edits and deletes rewrite
those rows in place and recompute every affected holder's chain forward, so
retroactive changes keep the chain invariant.

Flow of every mutation:
1. Validate input (no writes yet)
2. Lock all affected holders in ascending id order
3. One transaction: row locks, ledger writes, recomputation, audit entry
4. After commit: publish transfer/balance events (best effort)
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Set

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from institute_finance.app.core.exceptions import (
    ConcurrencyConflictError, InvalidAmountError, ResourceNotFoundError, SameHolderError,
)
from institute_finance.app.db.transaction import atomic
from institute_finance.app.domain.ledger.ledger_service import LedgerService, PlannedEntry
from institute_finance.app.domain.ledger.recompute import to_money
from institute_finance.app.domain.ledger.reference import LedgerReference
from institute_finance.app.models.cash_transfer import CashTransfer
from institute_finance.app.models.finance_enums import LedgerTransactionType
from institute_finance.app.services.audit import log_event, snapshot, AuditAction
from institute_finance.app.services.event_publisher import EventPublisher, FinanceEvent, balance_events
from institute_finance.app.services.holder_locking import HolderLockManager, lock_holder_rows

logger = logging.getLogger("institute_finance.transfers")

_UNSET = object()


def _validate_amount(amount) -> Decimal:
    try:
        value = to_money(amount)
    except (ArithmeticError, TypeError, ValueError):
        raise InvalidAmountError(amount)
    if value <= 0:
        raise InvalidAmountError(amount)
    return value


class TransferService:
    """Transfer Manager bound to one session."""

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

    # Reads

    async def get(self, transfer_id: int) -> CashTransfer:
        transfer = await self.db.get(CashTransfer, transfer_id, populate_existing=True)
        if transfer is None:
            raise ResourceNotFoundError("Cash transfer", transfer_id)
        return transfer

    async def list(
        self,
        holder_id: Optional[int] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[CashTransfer]:
        """Transfers, newest transfer_date first, optionally for one party."""
        query = select(CashTransfer)
        if holder_id is not None:
            query = query.where(or_(CashTransfer.sender_id == holder_id, CashTransfer.receiver_id == holder_id))
        if from_date and to_date:
            query = query.where(CashTransfer.transfer_date.between(from_date, to_date))
        query = query.order_by(CashTransfer.transfer_date.desc(), CashTransfer.id.desc())
        result = await self.db.execute(query.offset(offset).limit(limit))
        return list(result.scalars().all())

    # Helpers

    async def _planned_entries(
        self, transfer: CashTransfer, actor_id: Optional[int], new_parties: Iterable[int]
    ) -> List[PlannedEntry]:
        """Debit/credit pair for the transfer. Only parties new to it must be active."""
        new_parties = set(new_parties)
        sender = await self.ledger.get_holder(transfer.sender_id, require_active=transfer.sender_id in new_parties)
        receiver = await self.ledger.get_holder(transfer.receiver_id, require_active=transfer.receiver_id in new_parties)
        return [
            PlannedEntry(
                holder_id=sender.id,
                transaction_type=LedgerTransactionType.DEBIT,
                amount=transfer.amount,
                description=f"Transfer to {receiver.full_name}",
                entry_date=transfer.transfer_date,
                created_by=actor_id,
            ),
            PlannedEntry(
                holder_id=receiver.id,
                transaction_type=LedgerTransactionType.CREDIT,
                amount=transfer.amount,
                description=f"Transfer from {sender.full_name}",
                entry_date=transfer.transfer_date,
                created_by=actor_id,
            ),
        ]

    def _transfer_event(self, event_type: str, transfer: dict) -> tuple:
        return (event_type, {
            "transfer_id": transfer["id"],
            "sender_id": transfer["sender_id"],
            "receiver_id": transfer["receiver_id"],
            "amount": transfer["amount"],
            "transfer_date": transfer["transfer_date"],
        })

    # Operations

    async def create(
        self,
        sender_id: int,
        receiver_id: int,
        amount,
        transfer_date: date,
        notes: Optional[str],
        actor_id: Optional[int],
    ) -> CashTransfer:
        """
        Create a transfer and post its debit/credit pair.

        Raises:
            SameHolderError: sender == receiver
            InvalidAmountError: amount <= 0
            HolderNotFoundError / HolderInactiveError: bad party
        """
        if sender_id == receiver_id:
            raise SameHolderError(sender_id)
        amount = _validate_amount(amount)

        async with self.locks.hold([sender_id, receiver_id]):
            async with atomic(self.db):
                await lock_holder_rows(self.db, [sender_id, receiver_id])

                transfer = CashTransfer(
                    sender_id=sender_id,
                    receiver_id=receiver_id,
                    amount=amount,
                    transfer_date=transfer_date,
                    notes=notes,
                    created_by=actor_id,
                )
                planned = await self._planned_entries(transfer, actor_id, [sender_id, receiver_id])
                self.db.add(transfer)
                await self.db.flush()

                reference = LedgerReference.transfer(transfer.id)
                for entry in planned:
                    await self.ledger.append(
                        entry.holder_id, entry.transaction_type, entry.amount, reference,
                        entry.description, entry.created_by, entry.entry_date,
                    )

                after = snapshot(transfer)
                await log_event(
                    self.db, AuditAction.TRANSFER_CREATED, "cash_transfer", transfer.id,
                    actor_id=actor_id, after=after,
                )
                balances = await self.ledger.balances([sender_id, receiver_id])

        logger.info("Transfer created", extra={"transfer_id": transfer.id, "amount": str(amount)})
        await self.events.publish_all(
            [self._transfer_event(FinanceEvent.TRANSFER_CREATED, after)] + balance_events(balances)
        )
        return transfer

    async def edit(
        self,
        transfer_id: int,
        actor_id: Optional[int],
        sender_id: Optional[int] = None,
        receiver_id: Optional[int] = None,
        amount=None,
        transfer_date: Optional[date] = None,
        notes=_UNSET,
    ) -> CashTransfer:
        """
        Edit any field of a transfer, retroactively.

        The two ledger rows keep their position in the insertion sequence;
        every later row of each affected holder (old and new parties) is
        recomputed. A notes/date-only edit changes no balance.

        Raises:
            ResourceNotFoundError: unknown transfer
            SameHolderError / InvalidAmountError: invalid new values
            HolderInactiveError: a newly named party is retired (existing parties may be)
            ConcurrencyConflictError: parties changed while waiting for locks
        """
        if amount is not None:
            amount = _validate_amount(amount)

        current = await self.get(transfer_id)
        old_parties = {current.sender_id, current.receiver_id}

        new_sender = sender_id if sender_id is not None else current.sender_id
        new_receiver = receiver_id if receiver_id is not None else current.receiver_id
        if new_sender == new_receiver:
            raise SameHolderError(new_sender)

        involved: Set[int] = old_parties | {new_sender, new_receiver}

        async with self.locks.hold(involved):
            async with atomic(self.db):
                await lock_holder_rows(self.db, involved)

                transfer = await self.get(transfer_id)
                if {transfer.sender_id, transfer.receiver_id} != old_parties:
                    raise ConcurrencyConflictError(
                        f"Cash transfer {transfer_id} changed while waiting for locks",
                        details={"transfer_id": transfer_id},
                    )

                before = snapshot(transfer)
                transfer.sender_id = new_sender
                transfer.receiver_id = new_receiver
                if amount is not None:
                    transfer.amount = amount
                if transfer_date is not None:
                    transfer.transfer_date = transfer_date
                if notes is not _UNSET:
                    transfer.notes = notes

                planned = await self._planned_entries(transfer, actor_id, {new_sender, new_receiver} - old_parties)
                await self.db.flush()

                affected = await self.ledger.replace_reference_entries(
                    LedgerReference.transfer(transfer.id), planned
                )
                rewritten = await self.ledger.recompute_affected(affected)

                after = snapshot(transfer)
                await log_event(
                    self.db, AuditAction.TRANSFER_UPDATED, "cash_transfer", transfer.id,
                    actor_id=actor_id, before=before, after=after,
                )
                balances = await self.ledger.balances(affected)

        logger.info(
            "Transfer updated",
            extra={"transfer_id": transfer_id, "holders": sorted(affected), "rewritten": rewritten},
        )
        await self.events.publish_all(
            [self._transfer_event(FinanceEvent.TRANSFER_UPDATED, after)] + balance_events(balances)
        )
        return transfer

    async def delete(self, transfer_id: int, actor_id: Optional[int]) -> dict:
        """
        Delete a transfer, splicing its effect out of both chains.

        Returns:
            Snapshot of the deleted transfer
        """
        current = await self.get(transfer_id)
        parties = {current.sender_id, current.receiver_id}

        async with self.locks.hold(parties):
            async with atomic(self.db):
                await lock_holder_rows(self.db, parties)

                transfer = await self.get(transfer_id)
                if {transfer.sender_id, transfer.receiver_id} != parties:
                    raise ConcurrencyConflictError(
                        f"Cash transfer {transfer_id} changed while waiting for locks",
                        details={"transfer_id": transfer_id},
                    )

                before = snapshot(transfer)
                affected = await self.ledger.replace_reference_entries(
                    LedgerReference.transfer(transfer.id), []
                )
                rewritten = await self.ledger.recompute_affected(affected)

                await self.db.delete(transfer)
                await self.db.flush()

                await log_event(
                    self.db, AuditAction.TRANSFER_DELETED, "cash_transfer", transfer_id,
                    actor_id=actor_id, before=before,
                )
                balances = await self.ledger.balances(parties)

        logger.info(
            "Transfer deleted",
            extra={"transfer_id": transfer_id, "holders": sorted(parties), "rewritten": rewritten},
        )
        await self.events.publish_all(
            [self._transfer_event(FinanceEvent.TRANSFER_DELETED, before)] + balance_events(balances)
        )
        return before

