"""
ledger_services -- stateful orchestration over the kernel and engines.

Dependency direction:
    ledger_services -> ledger_engines   (allowed)
    ledger_services -> ledger_kernel    (allowed)
    ledger_engines  -> ledger_services  (FORBIDDEN)
    ledger_kernel   -> ledger_services  (FORBIDDEN)
"""

from ledger_services.costing_service import (
    CostingService,
    InboundResult,
    LayerConsumption,
    OutboundResult,
)
from ledger_services.transfer_service import TransferItemInput, TransferService

__all__ = [
    "CostingService",
    "InboundResult",
    "LayerConsumption",
    "OutboundResult",
    "TransferItemInput",
    "TransferService",
]
