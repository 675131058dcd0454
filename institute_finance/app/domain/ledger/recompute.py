"""
Forward recomputation of a holder's balance chain.

Pure functions over ledger rows (anything with transaction_type, amount,
previous_balance and new_balance). No I/O here: the ledger service loads a
holder's rows, runs the walk, and writes back the rows that changed.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, List, Sequence, Tuple

from institute_finance.app.models.finance_enums import LedgerTransactionType

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Coerce to a 2-place Decimal (currency scale)."""
    if isinstance(value, float):
        value = repr(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def apply_entry(kind: LedgerTransactionType, previous: Decimal, amount: Decimal) -> Decimal:
    """Balance after applying one entry to ``previous``."""
    if LedgerTransactionType(kind) == LedgerTransactionType.CREDIT:
        return to_money(previous + amount)
    return to_money(previous - amount)


@dataclass(frozen=True)
class ChainViolation:
    """One entry whose stored balances disagree with the walk."""
    entry_id: int
    expected_previous: Decimal
    actual_previous: Decimal
    expected_new: Decimal
    actual_new: Decimal


def recompute_chain(entries: Iterable[Any], opening_balance: Decimal = ZERO) -> Tuple[List[Any], Decimal]:
    """
    Walk entries in insertion order, rewriting previous/new balances.

    Args:
        entries: Rows of ONE holder, oldest first
        opening_balance: new_balance of the row just before the first one

    Returns:
        (rows whose balances were rewritten, closing balance)
    """
    running = to_money(opening_balance)
    changed = []
    for entry in entries:
        new_balance = apply_entry(entry.transaction_type, running, entry.amount)
        if entry.previous_balance != running or entry.new_balance != new_balance:
            entry.previous_balance = running
            entry.new_balance = new_balance
            changed.append(entry)
        running = new_balance
    return changed, running


def find_violations(entries: Sequence[Any]) -> List[ChainViolation]:
    """Check the chain invariant for one holder's full history without mutating it."""
    violations = []
    running = ZERO
    for entry in entries:
        expected_new = apply_entry(entry.transaction_type, running, entry.amount)
        if entry.previous_balance != running or entry.new_balance != expected_new:
            violations.append(ChainViolation(
                entry_id=entry.id,
                expected_previous=running,
                actual_previous=entry.previous_balance,
                expected_new=expected_new,
                actual_new=entry.new_balance,
            ))
        running = expected_new
    return violations
