"""ORM models.  Importing this package registers every table on Base.metadata."""

from ledger_kernel.models.account import Account, AccountSubtype, AccountType
from ledger_kernel.models.inventory import (
    InventoryLayer,
    InventoryMovement,
    Item,
    MovementType,
    NegativeInventoryPolicy,
    Warehouse,
)
from ledger_kernel.models.journal import Journal, JournalLine, JournalSourceType
from ledger_kernel.models.organization import Organization
from ledger_kernel.models.period import AccountingPeriod, PeriodStatus
from ledger_kernel.models.sequence import SequenceCounter
from ledger_kernel.models.transfer import Transfer, TransferItem, TransferStatus

__all__ = [
    "Account",
    "AccountSubtype",
    "AccountType",
    "AccountingPeriod",
    "InventoryLayer",
    "InventoryMovement",
    "Item",
    "Journal",
    "JournalLine",
    "JournalSourceType",
    "MovementType",
    "NegativeInventoryPolicy",
    "Organization",
    "PeriodStatus",
    "SequenceCounter",
    "Transfer",
    "TransferItem",
    "TransferStatus",
    "Warehouse",
]
