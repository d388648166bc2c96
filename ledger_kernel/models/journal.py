"""
Module: ledger_kernel.models.journal
Responsibility: ORM models for journals (headers) and journal lines.
Architecture position: Kernel > Models.  May import from db/base.py and
    db/types.py only.

Invariants enforced:
    - Journal numbers are unique per organization.
    - Lines belong to exactly one journal and are deleted with it
      (composition).  Posted journals are append-only; see
      db/immutability.py.
    - debit_amount and credit_amount are non-negative and never both
      non-zero (CHECK constraints).  Both zero is an informational line.

Non-goals:
    The balance invariant (total debit == total credit) is enforced by
    JournalService at write time, not by the ORM.  is_balanced below is a
    read-side convenience.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import Money

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account


class JournalSourceType(str, Enum):
    """What produced a journal."""

    MANUAL = "manual"
    OPENING_BALANCE = "opening_balance"
    TRANSFER = "transfer"
    REVERSAL = "reversal"
    COGS = "cogs"


class Journal(TrackedBase):
    """Journal header: the atomic unit of double-entry change."""

    __tablename__ = "journals"

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "journal_number", name="uq_journal_org_number"
        ),
        Index("idx_journal_org_date", "organization_id", "journal_date"),
        Index("idx_journal_source", "source_type", "source_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    # e.g. JV-2024-000001, OB-1200-000003
    journal_number: Mapped[str] = mapped_column(String(100), nullable=False)

    # Accounting date; drives trial balance cut-off and period checks
    journal_date: Mapped[date] = mapped_column(Date, nullable=False)

    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    description: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    source_type: Mapped[JournalSourceType] = mapped_column(
        String(30),
        default=JournalSourceType.MANUAL,
        nullable=False,
    )

    # Document that caused the journal (transfer id, account id, ...)
    source_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    total_debit: Mapped[Money] = mapped_column(nullable=False)

    total_credit: Mapped[Money] = mapped_column(nullable=False)

    # Set on reversal journals; points at the journal being undone
    reverses_journal_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journals.id"),
        nullable=True,
        unique=True,
    )

    lines: Mapped[list[JournalLine]] = relationship(
        back_populates="journal",
        cascade="all, delete-orphan",
        order_by="JournalLine.line_number",
        lazy="selectin",
    )

    @property
    def is_balanced(self) -> bool:
        """Header totals agree to the cent."""
        return abs(self.total_debit - self.total_credit) < Decimal("0.01")

    def __repr__(self) -> str:
        return f"<Journal {self.journal_number} {self.journal_date}>"


class JournalLine(TrackedBase):
    """One debit or credit (or informational zero) line of a journal."""

    __tablename__ = "journal_lines"

    __table_args__ = (
        UniqueConstraint("journal_id", "line_number", name="uq_journal_line_number"),
        CheckConstraint("debit_amount >= 0", name="ck_line_debit_non_negative"),
        CheckConstraint("credit_amount >= 0", name="ck_line_credit_non_negative"),
        CheckConstraint(
            "debit_amount = 0 OR credit_amount = 0", name="ck_line_single_side"
        ),
        Index("idx_line_account", "account_id"),
    )

    journal_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journals.id", ondelete="CASCADE"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    debit_amount: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)

    credit_amount: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)

    description: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    journal: Mapped[Journal] = relationship(back_populates="lines")

    account: Mapped[Account] = relationship(lazy="joined")

    @property
    def net_amount(self) -> Decimal:
        """Debit minus credit."""
        return self.debit_amount - self.credit_amount

    def __repr__(self) -> str:
        return (
            f"<JournalLine {self.line_number} "
            f"Dr {self.debit_amount} Cr {self.credit_amount}>"
        )
