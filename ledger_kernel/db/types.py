"""
Module: ledger_kernel.db.types
Responsibility: Annotated column aliases and the sanctioned rounding helpers
    for monetary amounts and inventory quantities.
Architecture position: Kernel > DB.  Imported by models/, domain/, services/
    and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats.  Amounts, quantities and unit costs are Decimal with
      Numeric(38, 9) storage.
    - round_money() is the only rounding function applied to journal
      amounts; round_unit_cost() is the only one applied to unit costs.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String

# Monetary amount: 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Inventory quantity (fractional units allowed)
Quantity = Annotated[Decimal, Numeric(38, 9)]

# Monotonic sequence number for ordering
Sequence = Annotated[int, BigInteger]

ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(4000)]


MONEY_DECIMAL_PLACES = 2
UNIT_COST_DECIMAL_PLACES = 9
DEFAULT_ROUNDING = ROUND_HALF_UP


def to_decimal(value: Decimal | int | str | None) -> Decimal:
    """
    Coerce an input amount to Decimal.

    Floats are rejected: they would already carry binary rounding error.
    None maps to zero, so optional debit/credit fields can be summed directly.
    """
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError("float amounts are not accepted; pass Decimal or str")
    return Decimal(str(value))


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value to ``decimal_places`` (half-up by default)."""
    quantum = Decimal(1).scaleb(-decimal_places)
    return value.quantize(quantum, rounding=rounding)


def round_unit_cost(
    value: Decimal,
    decimal_places: int = UNIT_COST_DECIMAL_PLACES,
) -> Decimal:
    """Round a unit cost to storage precision."""
    return round_money(value, decimal_places)
