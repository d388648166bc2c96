"""
Module: ledger_kernel.models.account
Responsibility: ORM model for the chart of accounts.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Account code is unique per organization.
    - Accounts are deactivated, never hard-deleted, once lines reference
      them (the journal_lines foreign key blocks the delete).
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class AccountType(str, Enum):
    """Top-level account classification."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSE = "expense"


class AccountSubtype(str, Enum):
    """Common subtypes.  The column accepts any string; these are the known ones."""

    BANK = "bank"
    CASH = "cash"
    RECEIVABLE = "receivable"
    PAYABLE = "payable"
    STOCK = "stock"
    OPENING_BALANCE_EQUITY = "opening_balance_equity"


class Account(TrackedBase):
    """A ledger account owned by one organization."""

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_account_org_code"),
        Index("idx_account_org_type", "organization_id", "account_type"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    # Human-readable code, e.g. "1200"
    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    # Finer classification, e.g. "bank", "stock", "opening_balance_equity"
    subtype: Mapped[str | None] = mapped_column(String(50), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"
