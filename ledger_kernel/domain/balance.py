"""
Double-entry balance checks shared by every component that writes or
verifies journals.

Pure functions over Decimal amounts.  JournalService uses them before
writing, check_ledger_balance and the opening balance integrity scan use
them after re-reading lines, and the trial balance uses the same tolerance
for its grand totals.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from ledger_kernel.db.types import to_decimal

# A journal is balanced when |debits - credits| is strictly below this.
BALANCE_TOLERANCE = Decimal("0.01")

ZERO = Decimal("0")


@dataclass(frozen=True)
class BalanceTotals:
    """Debit and credit totals of a set of lines."""

    total_debit: Decimal
    total_credit: Decimal

    @property
    def difference(self) -> Decimal:
        return self.total_debit - self.total_credit

    def is_balanced(self, tolerance: Decimal = BALANCE_TOLERANCE) -> bool:
        return is_balanced(self.total_debit, self.total_credit, tolerance)


def is_balanced(
    total_debit: Decimal,
    total_credit: Decimal,
    tolerance: Decimal = BALANCE_TOLERANCE,
) -> bool:
    """True when the two totals differ by less than ``tolerance``."""
    return abs(total_debit - total_credit) < tolerance


def sum_lines(pairs: Iterable[tuple[Decimal | None, Decimal | None]]) -> BalanceTotals:
    """
    Total (debit, credit) pairs.

    None counts as zero so callers can pass raw optional fields.
    """
    total_debit = ZERO
    total_credit = ZERO
    for debit, credit in pairs:
        total_debit += to_decimal(debit)
        total_credit += to_decimal(credit)
    return BalanceTotals(total_debit=total_debit, total_credit=total_credit)
