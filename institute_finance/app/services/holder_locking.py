"""
Per-holder locking for ledger mutations.

Two operations touching the same holder's chain must never interleave their
read-modify-write. Locks are always taken in ascending holder id order, so
two transfers moving money in opposite directions cannot deadlock.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, Iterable, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from institute_finance.app.core.config import settings
from institute_finance.app.core.exceptions import ConcurrencyConflictError
from institute_finance.app.models.holder import Holder

logger = logging.getLogger("institute_finance.locking")


def lock_order(holder_ids: Iterable[Optional[int]]) -> list[int]:
    """Distinct holder ids in the global acquisition order."""
    return sorted({holder_id for holder_id in holder_ids if holder_id is not None})


class HolderLockManager:
    """
    In-process mutual exclusion per holder.

    Complements the row locks taken by lock_holder_rows(): the row locks
    serialize across processes on PostgreSQL, these serialize coroutines of
    one process (and are the only guard on SQLite).
    """

    def __init__(self, timeout_seconds: Optional[float] = None):
        self.timeout_seconds = timeout_seconds
        self._locks: Dict[int, asyncio.Lock] = {}

    def _lock_for(self, holder_id: int) -> asyncio.Lock:
        lock = self._locks.get(holder_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[holder_id] = lock
        return lock

    def is_locked(self, holder_id: int) -> bool:
        lock = self._locks.get(holder_id)
        return lock is not None and lock.locked()

    def clear(self):
        """Forget idle locks (locks bind to the event loop that first waits on them)."""
        self._locks = {holder_id: lock for holder_id, lock in self._locks.items() if lock.locked()}

    @asynccontextmanager
    async def hold(self, holder_ids: Iterable[Optional[int]]):
        """
        Acquire every holder lock in ascending id order.

        Raises:
            ConcurrencyConflictError: If a lock is not obtained in time
        """
        timeout = self.timeout_seconds
        if timeout is None:
            timeout = settings.holder_lock_timeout_seconds

        ordered = lock_order(holder_ids)
        acquired: list[asyncio.Lock] = []
        try:
            for holder_id in ordered:
                lock = self._lock_for(holder_id)
                try:
                    await asyncio.wait_for(lock.acquire(), timeout)
                except asyncio.TimeoutError:
                    logger.warning("Timed out waiting for holder lock", extra={"holder_id": holder_id})
                    raise ConcurrencyConflictError(
                        f"Holder {holder_id} is busy with another ledger update, please retry",
                        details={"holder_id": holder_id}
                    )
                acquired.append(lock)
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()


async def lock_holder_rows(
    db: AsyncSession,
    holder_ids: Iterable[Optional[int]]
) -> Dict[int, Holder]:
    """
    Lock holder rows (SELECT ... FOR UPDATE) in ascending id order.

    Args:
        db: Database session (inside the operation's transaction)
        holder_ids: Holders whose chains are about to change

    Returns:
        Mapping of holder id -> Holder for the rows that exist
    """
    ordered = lock_order(holder_ids)
    if not ordered:
        return {}

    result = await db.execute(
        select(Holder)
        .where(Holder.id.in_(ordered))
        .order_by(Holder.id)
        .with_for_update()
    )
    return {holder.id: holder for holder in result.scalars().all()}


# Process-wide registry used by the domain services
holder_locks = HolderLockManager()
