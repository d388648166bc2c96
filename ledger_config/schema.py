"""
Configuration schema.

Frozen dataclasses with built-in defaults.  Every section validates itself
in ``__post_init__`` and raises ConfigurationError on bad values.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from ledger_kernel.exceptions import ConfigurationError
from ledger_kernel.domain.policies import NegativeInventoryPolicy


@dataclass(frozen=True)
class LedgerConfig:
    """Journal posting settings."""

    # |debits - credits| must be strictly below this
    balance_tolerance: Decimal = Decimal("0.01")
    money_places: int = 2
    # Reject journals dated outside an open accounting period
    enforce_posting_periods: bool = False
    journal_prefix: str = "JV"

    def __post_init__(self):
        if not isinstance(self.balance_tolerance, Decimal):
            object.__setattr__(self, "balance_tolerance", Decimal(str(self.balance_tolerance)))
        if self.balance_tolerance <= 0:
            raise ConfigurationError("ledger.balance_tolerance", "must be positive")
        if not 0 <= self.money_places <= 9:
            raise ConfigurationError("ledger.money_places", "must be between 0 and 9")
        if not self.journal_prefix:
            raise ConfigurationError("ledger.journal_prefix", "must not be empty")


@dataclass(frozen=True)
class InventoryConfig:
    """FIFO costing settings."""

    # Applied to warehouses with no policy of their own
    default_negative_policy: NegativeInventoryPolicy = NegativeInventoryPolicy.DISALLOW
    # Debited by sale COGS journals
    cogs_account_code: str = "5000"

    def __post_init__(self):
        if not self.cogs_account_code:
            raise ConfigurationError("inventory.cogs_account_code", "must not be empty")
        try:
            policy = NegativeInventoryPolicy(self.default_negative_policy)
        except ValueError:
            valid = [p.value for p in NegativeInventoryPolicy]
            raise ConfigurationError(
                "inventory.default_negative_policy", f"must be one of {valid}"
            ) from None
        object.__setattr__(self, "default_negative_policy", policy)


@dataclass(frozen=True)
class OpeningBalanceConfig:
    """Synthetic equity account and journal numbering for opening balances."""

    equity_account_code: str = "3900"
    equity_account_name: str = "Opening Balance Equity"
    equity_account_subtype: str = "opening_balance_equity"
    journal_prefix: str = "OB"

    def __post_init__(self):
        if not self.equity_account_code:
            raise ConfigurationError("opening_balance.equity_account_code", "must not be empty")
        if not self.journal_prefix:
            raise ConfigurationError("opening_balance.journal_prefix", "must not be empty")


@dataclass(frozen=True)
class TransferConfig:
    """Transfer numbering."""

    number_prefix: str = "TRF"
    number_width: int = 4

    def __post_init__(self):
        if not self.number_prefix:
            raise ConfigurationError("transfer.number_prefix", "must not be empty")
        if self.number_width < 1:
            raise ConfigurationError("transfer.number_width", "must be at least 1")


@dataclass(frozen=True)
class DatabaseConfig:
    """Engine settings passed to init_engine_from_url()."""

    url: str = "sqlite://"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10

    def __post_init__(self):
        if not self.url:
            raise ConfigurationError("database.url", "must not be empty")
        if self.pool_size < 1:
            raise ConfigurationError("database.pool_size", "must be at least 1")


@dataclass(frozen=True)
class CoreConfig:
    """All configuration sections."""

    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    inventory: InventoryConfig = field(default_factory=InventoryConfig)
    opening_balance: OpeningBalanceConfig = field(default_factory=OpeningBalanceConfig)
    transfer: TransferConfig = field(default_factory=TransferConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
