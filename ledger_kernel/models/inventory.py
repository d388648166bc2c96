"""
Module: ledger_kernel.models.inventory
Responsibility: ORM models for items, warehouses, FIFO cost layers and the
    inventory movement audit trail.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - 0 <= quantity_remaining <= quantity_original on every layer (CHECK).
    - Layer FIFO order is the total order (created_at, sequence).  sequence
      comes from SequenceService and is unique, so ties on created_at are
      broken deterministically.
    - Layers are never deleted; an exhausted layer stays for history.
    - Movements are append-only (db/immutability.py).
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, TrackedBase, UUIDString
from ledger_kernel.db.types import Money, Quantity, Sequence
from ledger_kernel.domain.policies import NegativeInventoryPolicy


class MovementType(str, Enum):
    """Inventory movement classification."""

    PURCHASE = "purchase"
    SALE = "sale"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    ADJUSTMENT = "adjustment"
    OPENING_BALANCE = "opening_balance"


class Item(TrackedBase):
    """A stock-keeping item."""

    __tablename__ = "items"

    __table_args__ = (
        UniqueConstraint("organization_id", "sku", name="uq_item_org_sku"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    sku: Mapped[str] = mapped_column(String(100), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Fallback inventory account when the warehouse has none
    inventory_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    # Untracked items have no layers and cannot be transferred
    track_inventory: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Item {self.sku}>"


class Warehouse(TrackedBase):
    """A stock location, optionally tied to a cost center."""

    __tablename__ = "warehouses"

    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_warehouse_org_code"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Transfers between different cost centers post a journal
    cost_center: Mapped[str | None] = mapped_column(String(50), nullable=True)

    inventory_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    # NULL falls back to InventoryConfig.default_negative_policy
    negative_inventory_policy: Mapped[NegativeInventoryPolicy | None] = mapped_column(
        String(30),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Warehouse {self.code}>"


class InventoryLayer(Base):
    """One FIFO batch of acquired stock at its original unit cost."""

    __tablename__ = "inventory_layers"

    __table_args__ = (
        CheckConstraint("quantity_original > 0", name="ck_layer_original_positive"),
        CheckConstraint("quantity_remaining >= 0", name="ck_layer_remaining_non_negative"),
        CheckConstraint(
            "quantity_remaining <= quantity_original",
            name="ck_layer_remaining_le_original",
        ),
        CheckConstraint("unit_cost >= 0", name="ck_layer_unit_cost_non_negative"),
        UniqueConstraint("organization_id", "sequence", name="uq_layer_org_sequence"),
        Index("idx_layer_fifo", "item_id", "warehouse_id", "created_at", "sequence"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id"),
        nullable=False,
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=False,
    )

    quantity_original: Mapped[Quantity] = mapped_column(nullable=False)

    quantity_remaining: Mapped[Quantity] = mapped_column(nullable=False)

    unit_cost: Mapped[Money] = mapped_column(nullable=False)

    # FIFO key, part 1: injected clock time at creation
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # FIFO key, part 2: monotonic insertion sequence
    sequence: Mapped[Sequence] = mapped_column(nullable=False)

    posting_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Inbound movement that created the layer
    source_movement_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_movements.id"),
        nullable=True,
    )

    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    @property
    def remaining_value(self) -> Decimal:
        return self.quantity_remaining * self.unit_cost

    @property
    def is_exhausted(self) -> bool:
        return self.quantity_remaining == 0

    def __repr__(self) -> str:
        return (
            f"<InventoryLayer #{self.sequence} "
            f"{self.quantity_remaining}/{self.quantity_original} @ {self.unit_cost}>"
        )


class InventoryMovement(Base):
    """
    Append-only record of one inbound or outbound stock change.

    quantity is signed: positive inbound, negative outbound.
    shortfall_quantity is the part of an outbound not backed by layers
    (only non-zero under a permissive negative-inventory policy).
    """

    __tablename__ = "inventory_movements"

    __table_args__ = (
        UniqueConstraint("organization_id", "sequence", name="uq_movement_org_sequence"),
        Index("idx_movement_item_wh", "item_id", "warehouse_id", "sequence"),
        Index("idx_movement_reference", "reference_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id"),
        nullable=False,
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=False,
    )

    movement_type: Mapped[MovementType] = mapped_column(String(30), nullable=False)

    quantity: Mapped[Quantity] = mapped_column(nullable=False)

    unit_cost: Mapped[Money] = mapped_column(nullable=False)

    total_cost: Mapped[Money] = mapped_column(nullable=False)

    shortfall_quantity: Mapped[Quantity] = mapped_column(
        default=Decimal("0"),
        nullable=False,
    )

    # Source document (transfer id, PO number, ...)
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    posting_date: Mapped[date] = mapped_column(Date, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    sequence: Mapped[Sequence] = mapped_column(nullable=False)

    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def __repr__(self) -> str:
        return f"<InventoryMovement {self.movement_type} {self.quantity} @ {self.unit_cost}>"
