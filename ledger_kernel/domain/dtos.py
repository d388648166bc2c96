"""
Value objects passed into and returned from kernel services.

All frozen: results returned to callers cannot be mutated behind the
service's back, and equal inputs compare equal.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from ledger_kernel.db.types import to_decimal


@dataclass(frozen=True)
class JournalLineSpec:
    """
    One requested journal line.

    Amounts are coerced to Decimal; floats are rejected by to_decimal().
    """

    account_id: UUID
    debit: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")
    description: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "debit", to_decimal(self.debit))
        object.__setattr__(self, "credit", to_decimal(self.credit))

    @classmethod
    def debit_line(cls, account_id: UUID, amount, description: str | None = None) -> "JournalLineSpec":
        return cls(account_id=account_id, debit=amount, description=description)

    @classmethod
    def credit_line(cls, account_id: UUID, amount, description: str | None = None) -> "JournalLineSpec":
        return cls(account_id=account_id, credit=amount, description=description)


@dataclass(frozen=True)
class LedgerBalanceCheck:
    """Totals recomputed from a journal's persisted lines."""

    journal_id: UUID
    balanced: bool
    total_debit: Decimal
    total_credit: Decimal
    line_count: int

    @property
    def difference(self) -> Decimal:
        return self.total_debit - self.total_credit
