"""
Ledger Entry database model.

Per-holder append-only float history. Rows are ordered by id (insertion
sequence), never by entry_date.
"""

from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, Date, Enum, String, Index
from institute_finance.app.db.session import Base, utcnow
from institute_finance.app.models.finance_enums import LedgerTransactionType, ReferenceKind

MONEY = Numeric(12, 2, asdecimal=True)


class LedgerEntry(Base):
    """
    Ledger Entry model.

    Chain invariant per holder (ordered by id):
        previous_balance == new_balance of the prior entry (0 for the first)
        new_balance == previous_balance +/- amount
    Balances are rewritten only by recomputation.
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        Index("ix_ledger_entries_holder_seq", "holder_id", "id"),
        Index("ix_ledger_entries_reference", "reference_type", "reference_id"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Owner of the chain
    holder_id = Column(Integer, ForeignKey('holders.id'), nullable=False, index=True)

    # Entry details
    transaction_type = Column(Enum(LedgerTransactionType), nullable=False)  # CREDIT or DEBIT
    amount = Column(MONEY, nullable=False)
    previous_balance = Column(MONEY, nullable=False, default=0)
    new_balance = Column(MONEY, nullable=False)

    # What produced the entry (transfer/income/expense id, NULL for manual)
    reference_type = Column(Enum(ReferenceKind), nullable=False)
    reference_id = Column(Integer, nullable=True)

    description = Column(String(255), nullable=True)
    created_by = Column(Integer, ForeignKey('holders.id'), nullable=True)
    entry_date = Column(Date, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def signed_amount(self):
        """Amount with the sign of its effect on the holder's balance."""
        if self.transaction_type == LedgerTransactionType.CREDIT:
            return self.amount
        return -self.amount

    def __repr__(self):
        return (
            f"<LedgerEntry(id={self.id}, holder={self.holder_id}, type='{self.transaction_type.value}', "
            f"amount={self.amount}, {self.previous_balance}->{self.new_balance})>"
        )
