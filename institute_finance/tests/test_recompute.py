"""
Balance chain walk tests (pure functions, no database).
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from institute_finance.app.domain.ledger.recompute import (
    ZERO, apply_entry, find_violations, recompute_chain, to_money,
)
from institute_finance.app.domain.ledger.reference import LedgerReference
from institute_finance.app.models.finance_enums import LedgerTransactionType, ReferenceKind

CREDIT = LedgerTransactionType.CREDIT
DEBIT = LedgerTransactionType.DEBIT


def row(entry_id, kind, amount, previous="0", new="0"):
    return SimpleNamespace(
        id=entry_id,
        transaction_type=kind,
        amount=Decimal(amount),
        previous_balance=Decimal(previous),
        new_balance=Decimal(new),
    )


def test_to_money_quantizes_to_cents():
    assert to_money("10") == Decimal("10.00")
    assert to_money(0.1 + 0.2) == Decimal("0.30")
    assert to_money("2.345") == Decimal("2.35")


def test_apply_entry_credit_and_debit():
    assert apply_entry(CREDIT, Decimal("100.00"), Decimal("25.50")) == Decimal("125.50")
    assert apply_entry(DEBIT, Decimal("100.00"), Decimal("125.50")) == Decimal("-25.50")


def test_recompute_chain_rewrites_from_opening_balance():
    entries = [
        row(1, CREDIT, "5000"),
        row(2, DEBIT, "2000"),
        row(3, CREDIT, "100"),
    ]

    changed, closing = recompute_chain(entries)

    assert [e.id for e in changed] == [1, 2, 3]
    assert closing == Decimal("3100.00")
    assert entries[1].previous_balance == Decimal("5000.00")
    assert entries[1].new_balance == Decimal("3000.00")
    assert entries[2].previous_balance == Decimal("3000.00")


def test_recompute_chain_only_reports_rows_that_moved():
    entries = [
        row(1, CREDIT, "5000", "0", "5000"),
        row(2, DEBIT, "500", "5000", "4000"),   # stale after an amount edit
        row(3, CREDIT, "10", "4000", "4010"),
    ]

    changed, closing = recompute_chain(entries)

    assert [e.id for e in changed] == [2, 3]
    assert closing == Decimal("4510.00")


def test_recompute_chain_is_idempotent():
    entries = [row(1, CREDIT, "10"), row(2, DEBIT, "3")]
    recompute_chain(entries)

    changed, closing = recompute_chain(entries)

    assert changed == []
    assert closing == Decimal("7.00")


def test_recompute_chain_from_pivot():
    entries = [row(7, DEBIT, "250", "0", "0")]

    changed, closing = recompute_chain(entries, opening_balance=Decimal("1000"))

    assert changed == entries
    assert entries[0].previous_balance == Decimal("1000.00")
    assert closing == Decimal("750.00")


def test_find_violations_reports_broken_link():
    entries = [
        row(1, CREDIT, "100", "0", "100"),
        row(2, DEBIT, "40", "90", "50"),
    ]

    violations = find_violations(entries)

    assert len(violations) == 1
    assert violations[0].entry_id == 2
    assert violations[0].expected_previous == Decimal("100.00")
    assert violations[0].actual_previous == Decimal("90")
    assert violations[0].expected_new == Decimal("60.00")


def test_find_violations_on_healthy_chain():
    entries = [row(1, CREDIT, "100", "0", "100"), row(2, DEBIT, "40", "100", "60")]
    assert find_violations(entries) == []
    assert find_violations([]) == []


def test_reference_requires_id_except_manual():
    assert str(LedgerReference.transfer(4)) == "transfer/4"
    assert LedgerReference.manual().id is None
    with pytest.raises(ValueError):
        LedgerReference(ReferenceKind.INCOME, None)


def test_zero_constant():
    assert ZERO == Decimal("0.00")
