"""
CostingService -- FIFO inventory costing against the layer store.

Responsibility:
    Records inbound stock as new cost layers and outbound stock as FIFO
    consumption of existing layers, writing one append-only movement per
    call.  Allocation itself is planned by ``ledger_engines.fifo``; this
    service loads, locks and updates the rows.

Concurrency:
    record_outbound() selects the open layers of the (item, warehouse) with
    ``SELECT ... FOR UPDATE`` ordered by (created_at, sequence).  A second
    concurrent outbound on the same pair blocks until the first commits,
    then re-reads the decremented quantities (populate_existing), so two
    callers can never both consume the same remaining quantity.

    Every write takes the per-organization movement counter before any
    layer row, and layer rows before the layer counter.  A transaction that
    holds layer locks therefore already holds the movement counter, so
    multi-item transfers and single outbounds in one organization cannot
    wait on each other in a cycle.

Invariants enforced:
    - 0 <= quantity_remaining <= quantity_original on every layer.
    - A rejected outbound (InsufficientInventoryError) mutates nothing.
    - Every call is atomic (savepoint) and flush-only.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_config.schema import InventoryConfig
from ledger_engines.fifo import AllocationPlan, LayerSnapshot, plan_consumption
from ledger_kernel.db.types import to_decimal
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.policies import NegativeInventoryPolicy
from ledger_kernel.exceptions import (
    InactiveWarehouseError,
    InsufficientInventoryError,
    InvalidAmountError,
    InvalidQuantityError,
    InventoryNotTrackedError,
    MissingInventoryAccountError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.inventory import (
    InventoryLayer,
    InventoryMovement,
    Item,
    MovementType,
    Warehouse,
)
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.costing")


@dataclass(frozen=True)
class LayerConsumption:
    """Quantity drawn from one layer by an outbound."""

    layer_id: UUID
    sequence: int
    quantity: Decimal
    unit_cost: Decimal

    @property
    def cost(self) -> Decimal:
        return self.quantity * self.unit_cost


@dataclass(frozen=True)
class InboundResult:
    """Layer and movement written by record_inbound()."""

    layer: InventoryLayer
    movement: InventoryMovement


@dataclass(frozen=True)
class OutboundResult:
    """Cost of an outbound and the layers it drew from."""

    quantity: Decimal
    total_cost: Decimal
    average_unit_cost: Decimal
    shortfall_quantity: Decimal
    consumptions: tuple[LayerConsumption, ...]
    movement: InventoryMovement


class CostingService(BaseService):
    """FIFO costing engine over persisted layers."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: InventoryConfig | None = None,
    ):
        super().__init__(session, clock)
        self.config = config or InventoryConfig()
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _resolve(self, organization_id: UUID, item_id: UUID, warehouse_id: UUID) -> tuple[Item, Warehouse]:
        item = self._get_scoped(Item, item_id, organization_id, "item")
        warehouse = self._get_scoped(Warehouse, warehouse_id, organization_id, "warehouse")
        if not warehouse.is_active:
            raise InactiveWarehouseError(warehouse.id, warehouse.code)
        return item, warehouse

    def tracked_item(self, organization_id: UUID, item_id: UUID) -> Item:
        """Load an item of the organization that has inventory tracking on."""
        item = self._get_scoped(Item, item_id, organization_id, "item")
        if not item.track_inventory:
            raise InventoryNotTrackedError(item.id, item.sku)
        return item

    @staticmethod
    def inventory_account_id(warehouse: Warehouse, item: Item) -> UUID:
        """Account valuing ``item`` in ``warehouse``: the warehouse's, else the item's."""
        account_id = warehouse.inventory_account_id or item.inventory_account_id
        if account_id is None:
            raise MissingInventoryAccountError(warehouse.id, item.id)
        return account_id

    def _layer_filter(self, organization_id: UUID, item_id: UUID, warehouse_id: UUID):
        return (
            InventoryLayer.organization_id == organization_id,
            InventoryLayer.item_id == item_id,
            InventoryLayer.warehouse_id == warehouse_id,
        )

    def _open_layers(self, organization_id: UUID, item_id: UUID, warehouse_id: UUID, lock: bool) -> list[InventoryLayer]:
        query = (
            select(InventoryLayer)
            .where(
                *self._layer_filter(organization_id, item_id, warehouse_id),
                InventoryLayer.quantity_remaining > 0,
            )
            .order_by(InventoryLayer.created_at, InventoryLayer.sequence)
            .execution_options(populate_existing=True)
        )
        if lock:
            query = query.with_for_update()
        return list(self.session.execute(query).scalars())

    def _last_known_unit_cost(self, organization_id: UUID, item_id: UUID, warehouse_id: UUID) -> Decimal | None:
        return self.session.execute(
            select(InventoryLayer.unit_cost)
            .where(*self._layer_filter(organization_id, item_id, warehouse_id))
            .order_by(InventoryLayer.created_at.desc(), InventoryLayer.sequence.desc())
            .limit(1)
        ).scalar_one_or_none()

    def _policy_for(self, warehouse: Warehouse) -> NegativeInventoryPolicy:
        if warehouse.negative_inventory_policy is None:
            return self.config.default_negative_policy
        return NegativeInventoryPolicy(warehouse.negative_inventory_policy)

    @staticmethod
    def _snapshot(layer: InventoryLayer) -> LayerSnapshot:
        return LayerSnapshot(
            layer_id=layer.id,
            created_at=layer.created_at,
            sequence=layer.sequence,
            quantity_remaining=layer.quantity_remaining,
            unit_cost=layer.unit_cost,
        )

    def _next_movement_sequence(self, organization_id: UUID) -> int:
        return self._sequences.next_value(SequenceService.movement_sequence(organization_id))

    def _new_movement(
        self,
        organization_id: UUID,
        item_id: UUID,
        warehouse_id: UUID,
        movement_type: MovementType,
        quantity: Decimal,
        unit_cost: Decimal,
        total_cost: Decimal,
        reference_id: str | None,
        posting_date: date,
        actor_id: UUID,
        shortfall: Decimal = Decimal("0"),
        sequence: int | None = None,
    ) -> InventoryMovement:
        if sequence is None:
            sequence = self._next_movement_sequence(organization_id)
        movement = InventoryMovement(
            organization_id=organization_id,
            item_id=item_id,
            warehouse_id=warehouse_id,
            movement_type=MovementType(movement_type),
            quantity=quantity,
            unit_cost=unit_cost,
            total_cost=total_cost,
            shortfall_quantity=shortfall,
            reference_id=str(reference_id) if reference_id is not None else None,
            posting_date=posting_date,
            created_at=self.clock.now(),
            sequence=sequence,
            created_by_id=actor_id,
        )
        self.session.add(movement)
        return movement

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def record_inbound(
        self,
        organization_id: UUID,
        item_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        unit_cost: Decimal,
        movement_type: MovementType,
        reference_id: str | None,
        posting_date: date,
        *,
        actor_id: UUID,
    ) -> InboundResult:
        """Create one new layer (remaining = quantity) and one positive movement."""
        quantity = to_decimal(quantity)
        unit_cost = to_decimal(unit_cost)
        if quantity <= 0:
            raise InvalidQuantityError(quantity, "inbound")
        if unit_cost < 0:
            raise InvalidAmountError(unit_cost, "unit cost must not be negative")

        with LogContext.bind(organization_id=organization_id, actor_id=actor_id), self.atomic():
            self._resolve(organization_id, item_id, warehouse_id)

            movement = self._new_movement(
                organization_id, item_id, warehouse_id, movement_type,
                quantity, unit_cost, quantity * unit_cost,
                reference_id, posting_date, actor_id,
            )
            self.session.flush()

            layer = InventoryLayer(
                organization_id=organization_id,
                item_id=item_id,
                warehouse_id=warehouse_id,
                quantity_original=quantity,
                quantity_remaining=quantity,
                unit_cost=unit_cost,
                created_at=self.clock.now(),
                sequence=self._sequences.next_value(SequenceService.layer_sequence(organization_id)),
                posting_date=posting_date,
                source_movement_id=movement.id,
                created_by_id=actor_id,
            )
            self.session.add(layer)
            self.session.flush()

            logger.info(
                "inbound_recorded",
                extra={
                    "item_id": str(item_id),
                    "warehouse_id": str(warehouse_id),
                    "movement_type": MovementType(movement_type).value,
                    "quantity": str(quantity),
                    "unit_cost": str(unit_cost),
                    "layer_id": str(layer.id),
                    "layer_sequence": layer.sequence,
                },
            )
        return InboundResult(layer=layer, movement=movement)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def record_outbound(
        self,
        organization_id: UUID,
        item_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        movement_type: MovementType,
        reference_id: str | None,
        posting_date: date,
        *,
        actor_id: UUID,
    ) -> OutboundResult:
        """
        Consume layers oldest first and write one negative movement.

        Raises InsufficientInventoryError (nothing mutated) when the open
        layers hold less than ``quantity`` and the warehouse policy is
        DISALLOW.  Under a permissive policy the uncovered part is costed
        per the policy and recorded as the movement's shortfall_quantity.
        """
        quantity = to_decimal(quantity)
        if quantity <= 0:
            raise InvalidQuantityError(quantity, "outbound")

        started = time.monotonic()
        with LogContext.bind(organization_id=organization_id, actor_id=actor_id), self.atomic():
            _, warehouse = self._resolve(organization_id, item_id, warehouse_id)
            policy = self._policy_for(warehouse)
            # Counter lock before layer locks
            movement_sequence = self._next_movement_sequence(organization_id)

            layers = self._open_layers(organization_id, item_id, warehouse_id, lock=True)
            last_known = None
            if policy is NegativeInventoryPolicy.LAST_KNOWN_COST:
                last_known = self._last_known_unit_cost(organization_id, item_id, warehouse_id)

            plan = self._plan(layers, quantity, policy, last_known, item_id, warehouse_id)

            by_id = {layer.id: layer for layer in layers}
            for draw in plan.draws:
                by_id[draw.layer_id].quantity_remaining -= draw.quantity

            movement = self._new_movement(
                organization_id, item_id, warehouse_id, movement_type,
                -quantity, plan.average_unit_cost, plan.total_cost,
                reference_id, posting_date, actor_id,
                shortfall=plan.shortfall,
                sequence=movement_sequence,
            )
            self.session.flush()

            logger.info(
                "outbound_recorded",
                extra={
                    "item_id": str(item_id),
                    "warehouse_id": str(warehouse_id),
                    "movement_type": MovementType(movement_type).value,
                    "quantity": str(quantity),
                    "total_cost": str(plan.total_cost),
                    "average_unit_cost": str(plan.average_unit_cost),
                    "layers_consumed": len(plan.draws),
                    "shortfall": str(plan.shortfall),
                    "duration_ms": round((time.monotonic() - started) * 1000, 2),
                },
            )

        return OutboundResult(
            quantity=quantity,
            total_cost=plan.total_cost,
            average_unit_cost=plan.average_unit_cost,
            shortfall_quantity=plan.shortfall,
            consumptions=tuple(
                LayerConsumption(
                    layer_id=d.layer_id,
                    sequence=d.sequence,
                    quantity=d.quantity,
                    unit_cost=d.unit_cost,
                )
                for d in plan.draws
            ),
            movement=movement,
        )

    def _plan(
        self,
        layers: list[InventoryLayer],
        quantity: Decimal,
        policy: NegativeInventoryPolicy,
        last_known: Decimal | None,
        item_id: UUID,
        warehouse_id: UUID,
    ) -> AllocationPlan:
        try:
            return plan_consumption(
                [self._snapshot(layer) for layer in layers],
                quantity=quantity,
                policy=policy,
                last_known_cost=last_known,
            )
        except InsufficientInventoryError as exc:
            logger.warning(
                "outbound_rejected_insufficient",
                extra={
                    "item_id": str(item_id),
                    "warehouse_id": str(warehouse_id),
                    "requested": str(exc.requested),
                    "available": str(exc.available),
                },
            )
            raise InsufficientInventoryError(
                available=exc.available,
                requested=exc.requested,
                item_id=item_id,
                warehouse_id=warehouse_id,
            ) from exc

    # ------------------------------------------------------------------
    # Dry runs
    # ------------------------------------------------------------------

    def available_quantity(self, organization_id: UUID, item_id: UUID, warehouse_id: UUID) -> Decimal:
        """Sum of remaining layer quantity.  No locks."""
        total = self.session.execute(
            select(func.coalesce(func.sum(InventoryLayer.quantity_remaining), Decimal("0")))
            .where(*self._layer_filter(organization_id, item_id, warehouse_id))
        ).scalar_one()
        return Decimal(total)

    def preview_outbound_cost(
        self,
        organization_id: UUID,
        item_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        policy: NegativeInventoryPolicy = NegativeInventoryPolicy.DISALLOW,
    ) -> AllocationPlan:
        """
        Plan an outbound without locking or mutating anything.

        Used for cost previews; the real cost is fixed by record_outbound().
        """
        quantity = to_decimal(quantity)
        if quantity <= 0:
            raise InvalidQuantityError(quantity, "preview")
        self._resolve(organization_id, item_id, warehouse_id)
        layers = self._open_layers(organization_id, item_id, warehouse_id, lock=False)
        last_known = None
        if NegativeInventoryPolicy(policy) is NegativeInventoryPolicy.LAST_KNOWN_COST:
            last_known = self._last_known_unit_cost(organization_id, item_id, warehouse_id)
        return self._plan(layers, quantity, policy, last_known, item_id, warehouse_id)
