"""
Module: ledger_engines
Responsibility:
    Pure calculation engines.  No database, no clock, no session: inputs are
    value objects and the same inputs always produce the same outputs.

Architecture position:
    Engines -- may import ledger_kernel.exceptions, ledger_kernel.db.types,
    ledger_kernel.models enums and ledger_kernel.logging_config.  MUST NOT
    import ledger_services.
"""

from ledger_engines.fifo import (
    AllocationPlan,
    LayerDraw,
    LayerSnapshot,
    available_quantity,
    order_layers,
    plan_consumption,
    shortfall_unit_cost,
)

__all__ = [
    "AllocationPlan",
    "LayerDraw",
    "LayerSnapshot",
    "available_quantity",
    "order_layers",
    "plan_consumption",
    "shortfall_unit_cost",
]
