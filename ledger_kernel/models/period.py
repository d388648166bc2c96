"""Accounting period model used to gate posting dates."""

from datetime import date
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class PeriodStatus(str, Enum):
    """Period lifecycle.  SOFT_CLOSED blocks posting but may be reopened like OPEN."""

    OPEN = "open"
    SOFT_CLOSED = "soft_closed"
    CLOSED = "closed"


class AccountingPeriod(TrackedBase):
    """A date range of one organization's books."""

    __tablename__ = "accounting_periods"

    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_period_org_name"),
        CheckConstraint("start_date <= end_date", name="ck_period_date_order"),
        Index("idx_period_org_dates", "organization_id", "start_date", "end_date"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    # e.g. "2024-01"
    name: Mapped[str] = mapped_column(String(50), nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[PeriodStatus] = mapped_column(
        String(20),
        default=PeriodStatus.OPEN,
        nullable=False,
    )

    def contains(self, d: date) -> bool:
        return self.start_date <= d <= self.end_date

    def __repr__(self) -> str:
        return f"<AccountingPeriod {self.name} {self.status}>"
