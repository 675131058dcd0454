"""
Cash Transfer database model.

Peer-to-peer movement of float between two holders.
"""

from sqlalchemy import Column, Integer, ForeignKey, DateTime, Date, Text, CheckConstraint
from institute_finance.app.db.session import Base, utcnow
from institute_finance.app.models.ledger_entry import MONEY


class CashTransfer(Base):
    """
    Cash Transfer model.

    Owns exactly two ledger entries (debit sender, credit receiver) linked by
    reference_type='transfer' and reference_id=<transfer id>.
    """
    __tablename__ = "cash_transfers"
    __table_args__ = (
        CheckConstraint("sender_id <> receiver_id", name="ck_cash_transfers_distinct_parties"),
        CheckConstraint("amount > 0", name="ck_cash_transfers_positive_amount"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Parties
    sender_id = Column(Integer, ForeignKey('holders.id'), nullable=False, index=True)
    receiver_id = Column(Integer, ForeignKey('holders.id'), nullable=False, index=True)

    amount = Column(MONEY, nullable=False)
    transfer_date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)

    created_by = Column(Integer, ForeignKey('holders.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<CashTransfer(id={self.id}, {self.sender_id}->{self.receiver_id}, amount={self.amount})>"
