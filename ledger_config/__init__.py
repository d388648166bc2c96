"""
ledger_config -- typed configuration for the ledger core.

Usage:
    from ledger_config import load_config, default_config

    config = load_config("config/ledger.yaml")
    service = JournalService(session, config=config.ledger)
"""

from ledger_config.loader import default_config, load_config, load_config_from_dict
from ledger_config.schema import (
    CoreConfig,
    DatabaseConfig,
    InventoryConfig,
    LedgerConfig,
    OpeningBalanceConfig,
    TransferConfig,
)

__all__ = [
    "CoreConfig",
    "DatabaseConfig",
    "InventoryConfig",
    "LedgerConfig",
    "OpeningBalanceConfig",
    "TransferConfig",
    "default_config",
    "load_config",
    "load_config_from_dict",
]
