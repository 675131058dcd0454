"""
Income database model.

Money-in record with a PENDING -> CONFIRMED | REJECTED workflow.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date, Text, Enum
from institute_finance.app.db.session import Base, utcnow
from institute_finance.app.models.ledger_entry import MONEY
from institute_finance.app.models.finance_enums import IncomeStatus, IncomeType, IncomeSource, PaymentMethod


class Income(Base):
    """
    Income model.

    On confirmation of a cash income, one credit entry is posted to the
    holder recorded in held_by_id.
    """
    __tablename__ = "incomes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    employee_id = Column(Integer, ForeignKey('holders.id'), nullable=True, index=True)
    income_type = Column(Enum(IncomeType), nullable=False, default=IncomeType.OTHER)
    source_type = Column(Enum(IncomeSource), nullable=False, default=IncomeSource.INSTITUTE)
    contributor_id = Column(Integer, ForeignKey('holders.id'), nullable=True)
    held_by_id = Column(Integer, ForeignKey('holders.id'), nullable=True, index=True)
    payment_method = Column(Enum(PaymentMethod), nullable=False, default=PaymentMethod.CASH)

    category = Column(String(100), nullable=True)
    amount = Column(MONEY, nullable=False)
    income_date = Column(Date, nullable=False)
    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    # Workflow
    status = Column(Enum(IncomeStatus), default=IncomeStatus.PENDING, nullable=False, index=True)
    confirmed_by = Column(Integer, ForeignKey('holders.id'), nullable=True)

    created_by = Column(Integer, ForeignKey('holders.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Income(id={self.id}, status='{self.status.value}', amount={self.amount})>"
