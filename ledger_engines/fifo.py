"""
ledger_engines.fifo -- FIFO layer allocation.

Responsibility:
    Given a snapshot of an (item, warehouse)'s cost layers and a requested
    outbound quantity, decide which layers are drawn from, by how much, and
    what the outbound costs.  Pure: the caller loads (and locks) the layers
    and applies the plan.

Invariants enforced:
    - Consumption order is the total order (created_at, sequence), oldest
      first.  sequence is unique per organization, so ties on created_at
      resolve the same way on every run and every replica.
    - No layer is drawn below zero: each draw is min(remaining, needed).
    - Under NegativeInventoryPolicy.DISALLOW a request larger than the sum
      of remaining quantities raises InsufficientInventoryError and no plan
      is produced.

Failure modes:
    - InvalidQuantityError if the requested quantity is not positive.
    - InsufficientInventoryError(available, requested) under DISALLOW.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from ledger_engines.tracer import traced_engine
from ledger_kernel.db.types import round_unit_cost
from ledger_kernel.exceptions import InsufficientInventoryError, InvalidQuantityError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.domain.policies import NegativeInventoryPolicy

logger = get_logger("engines.fifo")

ZERO = Decimal("0")


@dataclass(frozen=True)
class LayerSnapshot:
    """Read-only view of one cost layer at planning time."""

    layer_id: UUID
    created_at: datetime
    sequence: int
    quantity_remaining: Decimal
    unit_cost: Decimal

    @property
    def fifo_key(self) -> tuple[datetime, int]:
        return (self.created_at, self.sequence)


@dataclass(frozen=True)
class LayerDraw:
    """Quantity taken from one layer."""

    layer_id: UUID
    sequence: int
    quantity: Decimal
    unit_cost: Decimal

    @property
    def cost(self) -> Decimal:
        return self.quantity * self.unit_cost


@dataclass(frozen=True)
class AllocationPlan:
    """
    Outcome of a FIFO allocation.

    ``shortfall`` is the part of the request no layer covers; it is only
    non-zero when the policy permits negative inventory, and it is costed
    at ``shortfall_unit_cost``.
    """

    requested: Decimal
    draws: tuple[LayerDraw, ...]
    shortfall: Decimal = ZERO
    shortfall_unit_cost: Decimal = ZERO

    @property
    def covered_quantity(self) -> Decimal:
        return sum((d.quantity for d in self.draws), ZERO)

    @property
    def layer_cost(self) -> Decimal:
        return sum((d.cost for d in self.draws), ZERO)

    @property
    def shortfall_cost(self) -> Decimal:
        return self.shortfall * self.shortfall_unit_cost

    @property
    def total_cost(self) -> Decimal:
        return self.layer_cost + self.shortfall_cost

    @property
    def average_unit_cost(self) -> Decimal:
        """total_cost / requested, at unit-cost storage precision."""
        return round_unit_cost(self.total_cost / self.requested)


def order_layers(layers: Iterable[LayerSnapshot]) -> list[LayerSnapshot]:
    """Oldest first by (created_at, sequence)."""
    return sorted(layers, key=lambda layer: layer.fifo_key)


def available_quantity(layers: Iterable[LayerSnapshot]) -> Decimal:
    return sum((layer.quantity_remaining for layer in layers), ZERO)


def shortfall_unit_cost(
    policy: NegativeInventoryPolicy,
    last_known_cost: Decimal | None,
) -> Decimal:
    """Unit cost for quantity not backed by layers."""
    if policy is NegativeInventoryPolicy.LAST_KNOWN_COST:
        return last_known_cost if last_known_cost is not None else ZERO
    return ZERO


@traced_engine("fifo_allocation", "1.0", fingerprint_fields=("quantity", "policy"))
def plan_consumption(
    layers: Iterable[LayerSnapshot],
    *,
    quantity: Decimal,
    policy: NegativeInventoryPolicy = NegativeInventoryPolicy.DISALLOW,
    last_known_cost: Decimal | None = None,
) -> AllocationPlan:
    """
    Allocate ``quantity`` across ``layers`` oldest first.

    Exhausted layers in the input are ignored.  Raises before producing
    anything if the request cannot be satisfied under ``policy``.
    """
    if quantity <= 0:
        raise InvalidQuantityError(quantity, "outbound")

    policy = NegativeInventoryPolicy(policy)
    ordered = order_layers(layer for layer in layers if layer.quantity_remaining > 0)
    available = available_quantity(ordered)

    if available < quantity and policy is NegativeInventoryPolicy.DISALLOW:
        raise InsufficientInventoryError(available=available, requested=quantity)

    draws: list[LayerDraw] = []
    needed = quantity
    for layer in ordered:
        if needed <= 0:
            break
        take = min(layer.quantity_remaining, needed)
        draws.append(
            LayerDraw(
                layer_id=layer.layer_id,
                sequence=layer.sequence,
                quantity=take,
                unit_cost=layer.unit_cost,
            )
        )
        needed -= take
        logger.debug(
            "layer_consumed",
            extra={
                "layer_id": str(layer.layer_id),
                "sequence": layer.sequence,
                "consumed": str(take),
                "unit_cost": str(layer.unit_cost),
                "layer_remaining_after": str(layer.quantity_remaining - take),
            },
        )

    shortfall = needed if needed > 0 else ZERO
    plan = AllocationPlan(
        requested=quantity,
        draws=tuple(draws),
        shortfall=shortfall,
        shortfall_unit_cost=shortfall_unit_cost(policy, last_known_cost) if shortfall else ZERO,
    )
    if shortfall:
        logger.warning(
            "negative_inventory_shortfall",
            extra={
                "requested": str(quantity),
                "available": str(available),
                "shortfall": str(shortfall),
                "policy": policy.value,
                "shortfall_unit_cost": str(plan.shortfall_unit_cost),
            },
        )
    return plan
