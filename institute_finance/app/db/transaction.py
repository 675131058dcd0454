"""
Transaction boundary for ledger-affecting operations.

Every mutation of a holder's chain (append, replace, recompute) runs inside
``atomic``: the whole unit commits, or nothing does.
"""

import logging
from contextlib import asynccontextmanager
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from institute_finance.app.core.exceptions import ConcurrencyConflictError, StorageFailureError

logger = logging.getLogger("institute_finance.db")

# PostgreSQL serialization_failure / deadlock_detected
_CONFLICT_SQLSTATES = {"40001", "40P01"}


def is_serialization_failure(exc: DBAPIError) -> bool:
    """True when the driver reports a lock or serialization conflict."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _CONFLICT_SQLSTATES:
        return True
    return "database is locked" in str(exc).lower()


@asynccontextmanager
async def atomic(db: AsyncSession):
    """
    Run a block as one all-or-nothing unit and commit it.

    Domain errors propagate untouched after rollback. Driver errors are
    translated into ConcurrencyConflictError or StorageFailureError.
    """
    try:
        yield db
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        if isinstance(exc, (OperationalError, DBAPIError)) and is_serialization_failure(exc):
            logger.warning("Transaction aborted by serialization conflict: %s", exc)
            raise ConcurrencyConflictError(details={"reason": str(exc.orig) if getattr(exc, "orig", None) else str(exc)}) from exc
        logger.error("Transaction aborted by storage failure: %s", exc)
        raise StorageFailureError(details={"reason": type(exc).__name__}) from exc
    except BaseException:
        await db.rollback()
        raise
