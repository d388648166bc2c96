"""
Transfer workflow.

State machine for inter-warehouse transfers.  TransferService looks up the
transition for (current state, action) before touching any row; an action
with no transition from the current state is rejected with
InvalidStateTransitionError.
"""

from dataclasses import dataclass
from uuid import UUID

from ledger_kernel.exceptions import InvalidStateTransitionError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.transfer import TransferStatus

logger = get_logger("services.transfer_workflow")


@dataclass(frozen=True)
class Guard:
    """A condition for a transition."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    posts_entry: bool = False
    moves_inventory: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]

    def find(self, from_state: str, action: str) -> Transition | None:
        for transition in self.transitions:
            if transition.from_state == from_state and transition.action == action:
                return transition
        return None

    def require(self, entity_id: UUID, from_state: str, action: str) -> Transition:
        """Return the transition or raise InvalidStateTransitionError."""
        transition = self.find(from_state, action)
        if transition is None:
            logger.warning(
                "transition_rejected",
                extra={
                    "workflow_name": self.name,
                    "entity_id": str(entity_id),
                    "from_state": from_state,
                    "action": action,
                },
            )
            raise InvalidStateTransitionError("transfer", entity_id, from_state, action)
        return transition

    def allowed_actions(self, from_state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == from_state)


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

STOCK_AVAILABLE = Guard(
    name="stock_available",
    description="Source warehouse layers cover every item quantity",
)

# No reversal policy exists for goods already moved; this guard never passes.
REVERSAL_SUPPORTED = Guard(
    name="reversal_supported",
    description="In-transit inventory movements can be reversed",
)


# -----------------------------------------------------------------------------
# Transfer Workflow
# -----------------------------------------------------------------------------

_DRAFT = TransferStatus.DRAFT.value
_IN_TRANSIT = TransferStatus.IN_TRANSIT.value
_COMPLETED = TransferStatus.COMPLETED.value
_CANCELLED = TransferStatus.CANCELLED.value

TRANSFER_WORKFLOW = Workflow(
    name="inventory_transfer",
    description="Stock transfer between two warehouses of one organization",
    initial_state=_DRAFT,
    states=(_DRAFT, _IN_TRANSIT, _COMPLETED, _CANCELLED),
    transitions=(
        Transition(
            _DRAFT, _IN_TRANSIT, action="confirm",
            guard=STOCK_AVAILABLE, posts_entry=True, moves_inventory=True,
        ),
        Transition(_IN_TRANSIT, _COMPLETED, action="complete"),
        Transition(_DRAFT, _CANCELLED, action="cancel"),
        Transition(_IN_TRANSIT, _CANCELLED, action="cancel", guard=REVERSAL_SUPPORTED),
    ),
)
