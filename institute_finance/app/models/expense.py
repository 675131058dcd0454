"""
Expense database model.

Money-out record with two status axes: approval and reimbursement.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date, Text, Enum
from institute_finance.app.db.session import Base, utcnow
from institute_finance.app.models.ledger_entry import MONEY
from institute_finance.app.models.finance_enums import (
    ExpenseStatus, ReimbursementStatus, ExpenseType, PaidFrom
)


class Expense(Base):
    """
    Expense model.

    Approval: PENDING -> APPROVED | REJECTED.
    Reimbursement (once approved): PENDING -> REIMBURSED | CANCELLED.
    Approving an institute_float expense debits the float holder.
    """
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who spent / requested
    employee_id = Column(Integer, ForeignKey('holders.id'), nullable=False, index=True)
    expense_type = Column(Enum(ExpenseType), nullable=False, default=ExpenseType.INSTITUTE)
    category = Column(String(100), nullable=False)
    amount = Column(MONEY, nullable=False)
    description = Column(Text, nullable=True)
    expense_date = Column(Date, nullable=False)

    paid_from = Column(Enum(PaidFrom), nullable=False, default=PaidFrom.INSTITUTE_FLOAT)
    float_holder_id = Column(Integer, ForeignKey('holders.id'), nullable=True, index=True)

    # Approval Flow
    status = Column(Enum(ExpenseStatus), default=ExpenseStatus.PENDING, nullable=False, index=True)
    approved_by = Column(Integer, ForeignKey('holders.id'), nullable=True)
    approval_date = Column(DateTime(timezone=True), nullable=True)

    # Reimbursement Flow
    reimbursement_status = Column(
        Enum(ReimbursementStatus), default=ReimbursementStatus.PENDING, nullable=False, index=True
    )
    reimbursement_date = Column(DateTime(timezone=True), nullable=True)

    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey('holders.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return (
            f"<Expense(id={self.id}, status='{self.status.value}', "
            f"reimbursement='{self.reimbursement_status.value}', amount={self.amount})>"
        )
