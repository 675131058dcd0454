"""
Audit logging service for finance state changes.

Audit rows are written inside the caller's transaction (flush only), so an
operation that rolls back never leaves a success entry behind.
"""

from datetime import date, datetime
from decimal import Decimal
import enum
from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc, inspect
from institute_finance.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    HOLDER_CREATED = "HOLDER_CREATED"
    HOLDER_RETIRED = "HOLDER_RETIRED"

    # Cash transfers
    TRANSFER_CREATED = "TRANSFER_CREATED"
    TRANSFER_UPDATED = "TRANSFER_UPDATED"
    TRANSFER_DELETED = "TRANSFER_DELETED"

    # Income workflow
    INCOME_RECORDED = "INCOME_RECORDED"
    INCOME_CONFIRMED = "INCOME_CONFIRMED"
    INCOME_REJECTED = "INCOME_REJECTED"
    INCOME_UPDATED = "INCOME_UPDATED"
    INCOME_DELETED = "INCOME_DELETED"

    # Expense workflow
    EXPENSE_RECORDED = "EXPENSE_RECORDED"
    EXPENSE_APPROVED = "EXPENSE_APPROVED"
    EXPENSE_REJECTED = "EXPENSE_REJECTED"
    EXPENSE_REIMBURSED = "EXPENSE_REIMBURSED"
    EXPENSE_REIMBURSEMENT_CANCELLED = "EXPENSE_REIMBURSEMENT_CANCELLED"
    EXPENSE_UPDATED = "EXPENSE_UPDATED"
    EXPENSE_DELETED = "EXPENSE_DELETED"

    # Ledger
    LEDGER_ADJUSTED = "LEDGER_ADJUSTED"


def _json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    return value


def snapshot(instance: Any) -> Optional[Dict[str, Any]]:
    """
    Serialize the column values of a model instance to a JSON-safe dict.

    Args:
        instance: SQLAlchemy model instance (or None)

    Returns:
        Dict of column name -> value, or None when instance is None
    """
    if instance is None:
        return None
    mapper = inspect(instance).mapper
    return {
        column.key: _json_safe(getattr(instance, column.key))
        for column in mapper.column_attrs
    }


async def log_event(
    db: AsyncSession,
    action: str,
    entity_type: str,
    entity_id: Optional[int] = None,
    actor_id: Optional[int] = None,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Record a finance event in the audit log.

    Args:
        db: Database session (transaction owned by the caller)
        action: Action being performed (use AuditAction constants)
        entity_type: Kind of record that changed ("cash_transfer", "income", ...)
        entity_id: ID of the record that changed
        actor_id: Holder ID of the user performing the action
        before: Snapshot before the change (None for creations)
        after: Snapshot after the change (None for deletions)

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        before_snapshot=before,
        after_snapshot=after,
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Args:
        db: Database session
        entity_type: Filter by entity type
        entity_id: Filter by entity ID
        action: Filter by action type
        limit: Maximum number of records to return

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.id))

    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)

    if entity_id is not None:
        query = query.where(AuditLog.entity_id == entity_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def get_actor_history(
    db: AsyncSession,
    actor_id: int,
    limit: int = 50
) -> list[AuditLog]:
    """
    Get the audit history of actions performed by one holder.

    Args:
        db: Database session
        actor_id: Holder ID to get history for
        limit: Maximum number of records

    Returns:
        List of audit logs, most recent first
    """
    query = select(AuditLog).where(
        AuditLog.actor_id == actor_id
    ).order_by(desc(AuditLog.id)).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
