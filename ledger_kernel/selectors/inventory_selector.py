"""
Module: ledger_kernel.selectors.inventory_selector
Responsibility: On-hand quantities and values from open cost layers, the
    movement history of an (item, warehouse) pair, and whether an item can
    stop tracking inventory.
Architecture position: Kernel > Selectors.

On-hand figures are aggregated from layers at query time; there is no
stored stock balance to drift from the layers.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.models.inventory import InventoryLayer, InventoryMovement, MovementType
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class InventoryLevel:
    """Open quantity and FIFO value of one (item, warehouse)."""

    item_id: UUID
    warehouse_id: UUID
    quantity: Decimal
    value: Decimal
    open_layers: int

    @property
    def average_unit_cost(self) -> Decimal:
        if not self.quantity:
            return Decimal("0")
        return self.value / self.quantity


@dataclass(frozen=True)
class MovementRecord:
    id: UUID
    sequence: int
    movement_type: MovementType
    quantity: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    shortfall_quantity: Decimal
    reference_id: str | None
    posting_date: date


class InventorySelector(BaseSelector):
    """Read-only inventory queries."""

    def inventory_levels(
        self,
        organization_id: UUID,
        warehouse_id: UUID | None = None,
        item_id: UUID | None = None,
    ) -> list[InventoryLevel]:
        """One row per (item, warehouse) that still has open layers."""
        stmt = (
            select(
                InventoryLayer.item_id,
                InventoryLayer.warehouse_id,
                func.sum(InventoryLayer.quantity_remaining),
                func.sum(InventoryLayer.quantity_remaining * InventoryLayer.unit_cost),
                func.count(InventoryLayer.id),
            )
            .where(
                InventoryLayer.organization_id == organization_id,
                InventoryLayer.quantity_remaining > 0,
            )
            .group_by(InventoryLayer.item_id, InventoryLayer.warehouse_id)
        )
        if warehouse_id is not None:
            stmt = stmt.where(InventoryLayer.warehouse_id == warehouse_id)
        if item_id is not None:
            stmt = stmt.where(InventoryLayer.item_id == item_id)

        return [
            InventoryLevel(
                item_id=row_item,
                warehouse_id=row_warehouse,
                quantity=Decimal(quantity),
                value=Decimal(value),
                open_layers=count,
            )
            for row_item, row_warehouse, quantity, value, count in self.session.execute(stmt).all()
        ]

    def movement_history(
        self,
        organization_id: UUID,
        item_id: UUID,
        warehouse_id: UUID,
        limit: int | None = None,
    ) -> list[MovementRecord]:
        """Movements of the pair in recording order, oldest first."""
        stmt = (
            select(InventoryMovement)
            .where(
                InventoryMovement.organization_id == organization_id,
                InventoryMovement.item_id == item_id,
                InventoryMovement.warehouse_id == warehouse_id,
            )
            .order_by(InventoryMovement.sequence)
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        return [
            MovementRecord(
                id=m.id,
                sequence=m.sequence,
                movement_type=MovementType(m.movement_type),
                quantity=m.quantity,
                unit_cost=m.unit_cost,
                total_cost=m.total_cost,
                shortfall_quantity=m.shortfall_quantity,
                reference_id=m.reference_id,
                posting_date=m.posting_date,
            )
            for m in self.session.execute(stmt).scalars()
        ]

    def non_opening_movement_count(self, organization_id: UUID, item_id: UUID) -> int:
        """Movements of the item in any warehouse other than opening stock."""
        return self.session.execute(
            select(func.count(InventoryMovement.id)).where(
                InventoryMovement.organization_id == organization_id,
                InventoryMovement.item_id == item_id,
                InventoryMovement.movement_type != MovementType.OPENING_BALANCE,
            )
        ).scalar_one()

    def can_disable_inventory_tracking(self, organization_id: UUID, item_id: UUID) -> bool:
        """True while the item has moved no stock beyond opening balances."""
        return self.non_opening_movement_count(organization_id, item_id) == 0
