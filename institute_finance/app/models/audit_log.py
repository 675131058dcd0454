"""
Audit Log Database Model.

Append-only forensic trail of every finance state change.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from institute_finance.app.db.session import Base, utcnow


class AuditLog(Base):
    """
    Audit log model for tracking finance actions.

    Events logged:
    - TRANSFER_CREATED / TRANSFER_UPDATED / TRANSFER_DELETED
    - INCOME_RECORDED / INCOME_CONFIRMED / INCOME_REJECTED
    - EXPENSE_RECORDED / EXPENSE_APPROVED / EXPENSE_REJECTED
    - EXPENSE_REIMBURSED / EXPENSE_REIMBURSEMENT_CANCELLED
    - LEDGER_ADJUSTED, HOLDER_CREATED, HOLDER_RETIRED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Which record changed
    entity_type = Column(String(50), nullable=False, index=True)
    entity_id = Column(Integer, index=True, nullable=True)

    # Field snapshots (JSON for flexibility)
    before_snapshot = Column(JSON, nullable=True)
    after_snapshot = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity={self.entity_type}:{self.entity_id})>"
