"""Organization (tenant) model."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class Organization(TrackedBase):
    """
    Tenant root.

    Every tenant-scoped row carries an organization_id pointing here.
    Routing callers to their organization happens outside the core; the
    core only checks that referenced rows share the caller's organization.
    """

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Organization {self.name}>"
