"""Named counter rows backing SequenceService."""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is a named sequence with its current value.  Row-level locking
    keeps allocation monotonic under concurrency.
    """

    __tablename__ = "sequence_counters"

    # e.g. "journal:<org>:2024", "inventory_layer:<org>"
    name: Mapped[str] = mapped_column(String(150), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
