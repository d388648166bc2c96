"""
Module: ledger_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.
    Provides the UUID primary key convention, the type annotation map that
    keeps column types consistent, and the TrackedBase audit mixin.
Architecture position: Kernel > DB.  Lowest-level import target inside the
    kernel; every model file imports from here.  MUST NOT import from
    models/, services/, selectors/ or outer packages.

Invariants enforced:
    - UUID primary keys generated with uuid4.
    - Decimal maps to Numeric(38, 9).  Floats are never used for money or
      quantities.
    - TrackedBase records who created/updated a row and when.

Failure modes:
    - IntegrityError on a duplicate primary key (uuid4 collision).
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID stored as String(36) so the schema runs on PostgreSQL and SQLite.

    Converts UUID -> str on bind and str -> UUID on load.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class Base(DeclarativeBase):
    """
    Declarative base for all ledger models.

    Guarantees:
        - id is a uuid4 UUID stored as String(36).
        - Decimal -> Numeric(38, 9), datetime -> DateTime(timezone=True),
          UUID -> UUIDString, int -> BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        # 38 digits total, 9 decimal places
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamp and actor tracking.

    created_by_id is the authenticated user passed through by the caller.
    The core stores it for attribution and never interprets it.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )


UUID = PyUUID
