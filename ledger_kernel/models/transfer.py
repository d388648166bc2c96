"""
Module: ledger_kernel.models.transfer
Responsibility: ORM models for inter-warehouse transfers and their items.
Architecture position: Kernel > Models.

Lifecycle (see ledger_services.transfer_workflow):
    draft -> in_transit -> completed
    draft -> cancelled
    in_transit -> cancelled   (guarded: reversal is not supported)
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, TrackedBase, UUIDString
from ledger_kernel.db.types import Money, Quantity


class TransferStatus(str, Enum):
    """Transfer lifecycle states."""

    DRAFT = "draft"
    IN_TRANSIT = "in_transit"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Transfer(TrackedBase):
    """Movement of stock between two warehouses of one organization."""

    __tablename__ = "transfers"

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "transfer_number", name="uq_transfer_org_number"
        ),
        CheckConstraint(
            "source_warehouse_id <> destination_warehouse_id",
            name="ck_transfer_distinct_warehouses",
        ),
        Index("idx_transfer_org_status", "organization_id", "status"),
        Index("idx_transfer_org_date", "organization_id", "transfer_date"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    # TRF-2024-0001
    transfer_number: Mapped[str] = mapped_column(String(50), nullable=False)

    source_warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=False,
    )

    destination_warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=False,
    )

    status: Mapped[TransferStatus] = mapped_column(
        String(20),
        default=TransferStatus.DRAFT,
        nullable=False,
    )

    transfer_date: Mapped[date] = mapped_column(Date, nullable=False)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    # Cost preview while draft, actual FIFO cost once confirmed
    total_value: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)

    # Journal posted at confirmation (cross cost-center transfers only)
    journal_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journals.id"),
        nullable=True,
    )

    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    cancellation_reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    items: Mapped[list[TransferItem]] = relationship(
        back_populates="transfer",
        cascade="all, delete-orphan",
        order_by="TransferItem.line_number",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Transfer {self.transfer_number} {self.status}>"


class TransferItem(Base):
    """One item line of a transfer."""

    __tablename__ = "transfer_items"

    __table_args__ = (
        UniqueConstraint("transfer_id", "line_number", name="uq_transfer_item_line"),
        CheckConstraint("quantity > 0", name="ck_transfer_item_quantity_positive"),
    )

    transfer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transfers.id", ondelete="CASCADE"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id"),
        nullable=False,
    )

    quantity: Mapped[Quantity] = mapped_column(nullable=False)

    unit_cost: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)

    total_value: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)

    transfer: Mapped[Transfer] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<TransferItem {self.line_number} qty={self.quantity}>"
