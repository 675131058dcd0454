"""
Ledger Pydantic schemas.

Balances, history rows, chain verification and manual adjustments.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from institute_finance.app.models.finance_enums import LedgerTransactionType, ReferenceKind


class BalanceResponse(BaseModel):
    """Current float of one holder."""
    holder_id: int
    full_name: str
    balance: Decimal


class LedgerEntryResponse(BaseModel):
    """One row of a holder's chain."""
    id: int
    holder_id: int
    transaction_type: LedgerTransactionType
    amount: Decimal
    previous_balance: Decimal
    new_balance: Decimal
    reference_type: ReferenceKind
    reference_id: Optional[int]
    description: Optional[str]
    created_by: Optional[int]
    entry_date: date
    created_at: datetime

    class Config:
        from_attributes = True


class LedgerHistoryResponse(BaseModel):
    """Full history of one holder, oldest first."""
    holder_id: int
    balance: Decimal
    entries: List[LedgerEntryResponse]


class ChainViolationResponse(BaseModel):
    entry_id: int
    expected_previous: Decimal
    actual_previous: Decimal
    expected_new: Decimal
    actual_new: Decimal

    class Config:
        from_attributes = True


class ChainVerificationResponse(BaseModel):
    """Result of walking a holder's chain against the invariant."""
    holder_id: int
    entries_checked: int
    is_valid: bool
    violations: List[ChainViolationResponse]


class AdjustmentCreate(BaseModel):
    """Manual credit/debit (e.g. cash count correction)."""
    transaction_type: LedgerTransactionType
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=255)
    entry_date: Optional[date] = None
