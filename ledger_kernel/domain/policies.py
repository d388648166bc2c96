"""Inventory policies shared by the FIFO engine and the warehouse model."""

from enum import Enum


class NegativeInventoryPolicy(str, Enum):
    """
    How a warehouse treats outbound quantity not backed by layers.

    DISALLOW rejects the outbound.  LAST_KNOWN_COST costs the shortfall at
    the unit cost of the most recently created layer (zero with no history).
    ZERO_COST costs the shortfall at zero.
    """

    DISALLOW = "disallow"
    LAST_KNOWN_COST = "last_known_cost"
    ZERO_COST = "zero_cost"
