"""
Ledger chain audit.

Walks every holder's chain and reports entries whose previous/new balances
break the chain invariant. With --repair, broken chains are recomputed
forward from their first bad entry (one transaction per holder, under the
holder's lock).

Usage:
    python -m institute_finance.verify_ledger [--repair]
"""

import argparse
import asyncio
import logging
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from institute_finance.app.db.session import AsyncSessionLocal
from institute_finance.app.db.transaction import atomic
from institute_finance.app.domain.ledger.ledger_service import LedgerService
from institute_finance.app.domain.ledger.recompute import ChainViolation
from institute_finance.app.models.holder import Holder
from institute_finance.app.services.holder_locking import lock_holder_rows

logger = logging.getLogger("institute_finance.verify")


async def audit_chains(db: AsyncSession) -> Dict[int, List[ChainViolation]]:
    """holder id -> violations, for holders whose chain is broken."""
    ledger = LedgerService(db)
    result = await db.execute(select(Holder.id).order_by(Holder.id))
    report = {}
    for holder_id in result.scalars().all():
        violations = await ledger.verify_chain(holder_id)
        if violations:
            report[holder_id] = violations
    return report


async def repair_chains(db: AsyncSession, report: Dict[int, List[ChainViolation]]) -> int:
    """Recompute each broken chain from its first violation. Returns rows rewritten."""
    ledger = LedgerService(db)
    rewritten = 0
    for holder_id, violations in sorted(report.items()):
        async with ledger.locks.hold([holder_id]):
            async with atomic(db):
                await lock_holder_rows(db, [holder_id])
                rewritten += await ledger.recompute_holder(holder_id, violations[0].entry_id)
        logger.warning("Chain repaired", extra={"holder_id": holder_id, "from_entry_id": violations[0].entry_id})
    return rewritten


async def main(repair: bool = False) -> int:
    async with AsyncSessionLocal() as db:
        report = await audit_chains(db)
        if not report:
            print("All holder chains are consistent")
            return 0

        for holder_id, violations in report.items():
            for v in violations:
                print(
                    f"holder {holder_id} entry {v.entry_id}: "
                    f"expected {v.expected_previous} -> {v.expected_new}, "
                    f"stored {v.actual_previous} -> {v.actual_new}"
                )

        if not repair:
            return 1

        rewritten = await repair_chains(db, report)
        print(f"Repaired {len(report)} chain(s), {rewritten} row(s) rewritten")
        return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Verify (and optionally repair) holder ledger chains")
    parser.add_argument("--repair", action="store_true", help="Recompute broken chains forward")
    args = parser.parse_args()
    raise SystemExit(asyncio.run(main(repair=args.repair)))
