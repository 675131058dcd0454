"""
Ledger reference: what produced a ledger entry.

A tagged value over {transfer, income, expense, manual}. Every kind except
manual carries the id of the originating record.
"""

from dataclasses import dataclass
from typing import Optional

from institute_finance.app.models.finance_enums import ReferenceKind


@dataclass(frozen=True)
class LedgerReference:
    kind: ReferenceKind
    id: Optional[int] = None

    def __post_init__(self):
        if self.kind == ReferenceKind.MANUAL:
            return
        if self.id is None:
            raise ValueError(f"{self.kind.value} reference requires an id")

    @classmethod
    def transfer(cls, transfer_id: int) -> "LedgerReference":
        return cls(ReferenceKind.TRANSFER, transfer_id)

    @classmethod
    def income(cls, income_id: int) -> "LedgerReference":
        return cls(ReferenceKind.INCOME, income_id)

    @classmethod
    def expense(cls, expense_id: int) -> "LedgerReference":
        return cls(ReferenceKind.EXPENSE, expense_id)

    @classmethod
    def manual(cls, adjustment_id: Optional[int] = None) -> "LedgerReference":
        return cls(ReferenceKind.MANUAL, adjustment_id)

    def __str__(self) -> str:
        if self.id is None:
            return self.kind.value
        return f"{self.kind.value}/{self.id}"
