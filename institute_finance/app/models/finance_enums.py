"""
Finance enumerations for the float ledger and approval workflows.
"""

import enum


class LedgerTransactionType(str, enum.Enum):
    """Ledger entry direction."""
    CREDIT = "credit"  # Cash added to the holder's float
    DEBIT = "debit"  # Cash leaving the holder's float


class ReferenceKind(str, enum.Enum):
    """What produced a ledger entry."""
    TRANSFER = "transfer"
    INCOME = "income"
    EXPENSE = "expense"
    MANUAL = "manual"


class IncomeStatus(str, enum.Enum):
    """Income status: PENDING -> CONFIRMED | REJECTED (both terminal)."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class IncomeType(str, enum.Enum):
    COURSE_FEE = "course_fee"
    SALARY = "salary"
    PERSONAL_WORK = "personal_work"
    OTHER = "other"


class IncomeSource(str, enum.Enum):
    INSTITUTE = "institute"
    PERSONAL_PROJECT = "personal_project"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    ONLINE = "online"
    CHEQUE = "cheque"


class ExpenseStatus(str, enum.Enum):
    """Expense approval axis: PENDING -> APPROVED | REJECTED (both terminal)."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReimbursementStatus(str, enum.Enum):
    """Expense reimbursement axis, meaningful once approved."""
    PENDING = "pending"
    REIMBURSED = "reimbursed"
    CANCELLED = "cancelled"


class ExpenseType(str, enum.Enum):
    PERSONAL = "personal"
    INSTITUTE = "institute"


class PaidFrom(str, enum.Enum):
    """Where the money for an expense came from."""
    INSTITUTE_FLOAT = "institute_float"
    PERSONAL_MONEY = "personal_money"
