"""
Typed exception hierarchy for the ledger kernel.

Every error raised by the core is a subclass of ``LedgerError``.  Each class
carries a stable ``code`` attribute (machine-readable, safe to hand to an API
layer) and stores the values it reports as attributes, so callers catch by
type and read structured data instead of parsing messages.

    try:
        costing.record_outbound(...)
    except InsufficientInventoryError as e:
        respond(code=e.code, available=e.available, requested=e.requested)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerError (base)
    |
    +-- NotFoundError
    |
    +-- ValidationError
    |   +-- InvalidQuantityError
    |   +-- InvalidAmountError
    |   +-- InvalidJournalLineError
    |   +-- EmptyJournalError
    |   +-- InactiveAccountError
    |   +-- InactiveWarehouseError
    |   +-- SameWarehouseError
    |   +-- EmptyTransferError
    |   +-- InventoryNotTrackedError
    |   +-- InventoryTrackingInUseError
    |
    +-- PostingError
    |   +-- UnbalancedJournalError
    |   +-- MissingInventoryAccountError
    |   +-- MissingCogsAccountError
    |
    +-- ReversalError
    |   +-- JournalAlreadyReversedError
    |
    +-- InventoryError
    |   +-- InsufficientInventoryError
    |
    +-- WorkflowError
    |   +-- InvalidStateTransitionError
    |       +-- TransferReversalNotSupportedError
    |
    +-- PeriodError
    |   +-- PeriodNotFoundError
    |   +-- PeriodClosedError
    |   +-- PeriodOverlapError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category    | Code                          | When Raised
------------|-------------------------------|------------------------------------
Lookup      | NOT_FOUND                     | Missing, or owned by another tenant
------------|-------------------------------|------------------------------------
Validation  | INVALID_QUANTITY              | Quantity <= 0
            | INVALID_AMOUNT                | Amount unusable (zero, negative)
            | INVALID_JOURNAL_LINE          | Negative or double-sided line
            | EMPTY_JOURNAL                 | Journal without lines
            | INACTIVE_ACCOUNT              | Posting to a deactivated account
            | INACTIVE_WAREHOUSE            | Stock moved through a closed site
            | SAME_WAREHOUSE                | Transfer source == destination
            | EMPTY_TRANSFER                | Transfer without items
            | INVENTORY_NOT_TRACKED         | Stock operation on untracked item
            | INVENTORY_TRACKING_IN_USE     | Untracking an item with movements
------------|-------------------------------|------------------------------------
Posting     | UNBALANCED_JOURNAL            | |debits - credits| >= tolerance
            | MISSING_INVENTORY_ACCOUNT     | No inventory account to post to
            | MISSING_COGS_ACCOUNT          | No COGS account for a sale
------------|-------------------------------|------------------------------------
Reversal    | JOURNAL_ALREADY_REVERSED      | Journal reversed before
------------|-------------------------------|------------------------------------
Inventory   | INSUFFICIENT_INVENTORY        | Outbound exceeds FIFO layers
------------|-------------------------------|------------------------------------
Workflow    | INVALID_STATE_TRANSITION      | Action not allowed in state
            | TRANSFER_REVERSAL_UNSUPPORTED | Cancelling an in-transit transfer
------------|-------------------------------|------------------------------------
Period      | PERIOD_NOT_FOUND              | No period covers the date
            | PERIOD_CLOSED                 | Period closed or soft-closed
            | PERIOD_OVERLAP                | New period overlaps another
------------|-------------------------------|------------------------------------
Immutable   | IMMUTABILITY_VIOLATION        | Update/delete of posted records
------------|-------------------------------|------------------------------------
Config      | CONFIGURATION_ERROR           | Invalid configuration value

None of these are transient.  The core never retries them; unexpected
storage errors propagate unchanged and the caller's transaction scope rolls
back.
"""

from datetime import date
from decimal import Decimal
from typing import Any


class LedgerError(Exception):
    """Base exception for all ledger kernel errors."""

    code: str = "LEDGER_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Lookup
# =============================================================================


class NotFoundError(LedgerError):
    """
    Referenced entity does not exist for the calling organization.

    An entity owned by another tenant is reported exactly like a missing
    one so that existence never leaks across organizations.
    """

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


# =============================================================================
# Validation
# =============================================================================


class ValidationError(LedgerError):
    """Base for rejected inputs."""

    code: str = "VALIDATION_ERROR"


class InvalidQuantityError(ValidationError):
    """Quantity must be strictly positive."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: Decimal | int | str, context: str | None = None):
        self.quantity = str(quantity)
        self.context = context
        suffix = f" ({context})" if context else ""
        super().__init__(f"Quantity must be greater than zero, got {quantity}{suffix}")


class InvalidAmountError(ValidationError):
    """Monetary amount is not usable for the requested operation."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: Decimal | str, reason: str):
        self.amount = str(amount)
        self.reason = reason
        super().__init__(f"Invalid amount {amount}: {reason}")


class InvalidJournalLineError(ValidationError):
    """A journal line is negative or carries both a debit and a credit."""

    code: str = "INVALID_JOURNAL_LINE"

    def __init__(self, line_number: int, reason: str):
        self.line_number = line_number
        self.reason = reason
        super().__init__(f"Journal line {line_number} is invalid: {reason}")


class EmptyJournalError(ValidationError):
    """Journal has no lines."""

    code: str = "EMPTY_JOURNAL"

    def __init__(self):
        super().__init__("Journal must contain at least one line")


class InactiveAccountError(ValidationError):
    """Account is deactivated and cannot be posted to."""

    code: str = "INACTIVE_ACCOUNT"

    def __init__(self, account_id: Any, account_code: str):
        self.account_id = str(account_id)
        self.account_code = account_code
        super().__init__(f"Account {account_code} is inactive")


class InactiveWarehouseError(ValidationError):
    """Warehouse is deactivated and cannot move stock."""

    code: str = "INACTIVE_WAREHOUSE"

    def __init__(self, warehouse_id: Any, warehouse_code: str):
        self.warehouse_id = str(warehouse_id)
        self.warehouse_code = warehouse_code
        super().__init__(f"Warehouse {warehouse_code} is inactive")


class SameWarehouseError(ValidationError):
    """Transfer source and destination are the same warehouse."""

    code: str = "SAME_WAREHOUSE"

    def __init__(self, warehouse_id: Any):
        self.warehouse_id = str(warehouse_id)
        super().__init__("Source and destination warehouses must be different")


class EmptyTransferError(ValidationError):
    """Transfer has no items."""

    code: str = "EMPTY_TRANSFER"

    def __init__(self):
        super().__init__("Transfer must contain at least one item")


class InventoryNotTrackedError(ValidationError):
    """Item has inventory tracking switched off."""

    code: str = "INVENTORY_NOT_TRACKED"

    def __init__(self, item_id: Any, sku: str):
        self.item_id = str(item_id)
        self.sku = sku
        super().__init__(f"Inventory tracking is not enabled for item {sku}")


class InventoryTrackingInUseError(ValidationError):
    """Tracking cannot be disabled once stock has moved beyond opening balances."""

    code: str = "INVENTORY_TRACKING_IN_USE"

    def __init__(self, item_id: Any, movement_count: int):
        self.item_id = str(item_id)
        self.movement_count = movement_count
        super().__init__(
            f"Item {item_id} has {movement_count} non-opening movements; "
            "inventory tracking cannot be disabled"
        )


# =============================================================================
# Posting
# =============================================================================


class PostingError(LedgerError):
    """Base for journal posting failures."""

    code: str = "POSTING_ERROR"


class UnbalancedJournalError(PostingError):
    """Debits and credits differ by at least the balance tolerance."""

    code: str = "UNBALANCED_JOURNAL"

    def __init__(self, total_debit: Decimal, total_credit: Decimal):
        self.total_debit = total_debit
        self.total_credit = total_credit
        self.difference = total_debit - total_credit
        super().__init__(
            f"Journal is unbalanced: debits {total_debit} != credits "
            f"{total_credit} (difference {self.difference})"
        )


class MissingInventoryAccountError(PostingError):
    """No inventory account is configured for a warehouse/item pair."""

    code: str = "MISSING_INVENTORY_ACCOUNT"

    def __init__(self, warehouse_id: Any, item_id: Any):
        self.warehouse_id = str(warehouse_id)
        self.item_id = str(item_id)
        super().__init__(
            f"No inventory account configured for warehouse {warehouse_id} "
            f"or item {item_id}"
        )


class MissingCogsAccountError(PostingError):
    """The organization has no active cost of goods sold account."""

    code: str = "MISSING_COGS_ACCOUNT"

    def __init__(self, organization_id: Any, account_code: str):
        self.organization_id = str(organization_id)
        self.account_code = account_code
        super().__init__(f"No COGS account with code {account_code}")


# =============================================================================
# Reversal
# =============================================================================


class ReversalError(LedgerError):
    """Base for journal reversal failures."""

    code: str = "REVERSAL_ERROR"


class JournalAlreadyReversedError(ReversalError):
    """Journal was already reversed, or is itself a reversal."""

    code: str = "JOURNAL_ALREADY_REVERSED"

    def __init__(self, journal_id: Any, reversal_journal_id: Any | None = None):
        self.journal_id = str(journal_id)
        self.reversal_journal_id = (
            str(reversal_journal_id) if reversal_journal_id else None
        )
        super().__init__(f"Journal {journal_id} cannot be reversed again")


# =============================================================================
# Inventory
# =============================================================================


class InventoryError(LedgerError):
    """Base for inventory costing failures."""

    code: str = "INVENTORY_ERROR"


class InsufficientInventoryError(InventoryError):
    """Outbound quantity exceeds what the FIFO layers hold."""

    code: str = "INSUFFICIENT_INVENTORY"

    def __init__(
        self,
        available: Decimal,
        requested: Decimal,
        item_id: Any | None = None,
        warehouse_id: Any | None = None,
    ):
        self.available = available
        self.requested = requested
        self.item_id = str(item_id) if item_id is not None else None
        self.warehouse_id = str(warehouse_id) if warehouse_id is not None else None
        super().__init__(
            f"Insufficient inventory: requested {requested}, available {available}"
        )


# =============================================================================
# Workflow
# =============================================================================


class WorkflowError(LedgerError):
    """Base for workflow state machine failures."""

    code: str = "WORKFLOW_ERROR"


class InvalidStateTransitionError(WorkflowError):
    """Action is not permitted from the entity's current state."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(self, entity_type: str, entity_id: Any, current_state: str, action: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.current_state = current_state
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} in state '{current_state}'"
        )


class TransferReversalNotSupportedError(InvalidStateTransitionError):
    """Cancelling an in-transit transfer would need inventory reversal."""

    code: str = "TRANSFER_REVERSAL_UNSUPPORTED"

    def __init__(self, transfer_id: Any):
        super().__init__("transfer", transfer_id, "in_transit", "cancel")
        self.message = (
            f"Transfer {transfer_id} is in transit; reversing its inventory "
            f"movements is not supported"
        )
        self.args = (self.message,)


# =============================================================================
# Periods
# =============================================================================


class PeriodError(LedgerError):
    """Base for accounting period failures."""

    code: str = "PERIOD_ERROR"


class PeriodNotFoundError(PeriodError):
    """No accounting period covers the date."""

    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, posting_date: date):
        self.posting_date = str(posting_date)
        super().__init__(f"No accounting period covers {posting_date}")


class PeriodClosedError(PeriodError):
    """Posting date falls in a closed or soft-closed period."""

    code: str = "PERIOD_CLOSED"

    def __init__(self, period_name: str, status: str, posting_date: date):
        self.period_name = period_name
        self.status = status
        self.posting_date = str(posting_date)
        super().__init__(
            f"Period {period_name} is {status}; cannot post on {posting_date}"
        )


class PeriodOverlapError(PeriodError):
    """New period overlaps an existing one."""

    code: str = "PERIOD_OVERLAP"

    def __init__(self, name: str, existing_name: str):
        self.name = name
        self.existing_name = existing_name
        super().__init__(f"Period {name} overlaps existing period {existing_name}")


# =============================================================================
# Immutability
# =============================================================================


class ImmutabilityError(LedgerError):
    """Base for append-only violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempt to modify or delete a record that is append-only."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: Any, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


# =============================================================================
# Configuration
# =============================================================================


class ConfigurationError(LedgerError, ValueError):
    """Configuration value is missing or invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration '{key}': {reason}")
