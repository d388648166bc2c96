"""
BaseService -- abstract base for all write services.

Services receive a SQLAlchemy ``Session`` from the caller and persist with
``session.flush()``; they never commit.  The caller (``session_scope()`` or
a request handler) owns the unit of work.

Each public mutating operation runs in ``self.atomic()``, a savepoint.  If
the operation raises, everything it wrote is rolled back to the savepoint
and the outer transaction is left exactly as it was before the call.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Generator
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import NotFoundError


class BaseService(ABC):
    """
    Abstract base class for kernel and orchestration services.

    Guarantees:
        - Never calls ``session.commit()`` or ``session.rollback()`` on the
          outer transaction.
        - ``atomic()`` gives all-or-nothing semantics per operation.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    @contextmanager
    def atomic(self) -> Generator[Session, None, None]:
        """Run a block inside a savepoint; roll it back if the block raises."""
        with self.session.begin_nested():
            yield self.session

    def _get_scoped(self, model, entity_id: UUID, organization_id: UUID, entity_type: str):
        """
        Load a tenant-scoped row.

        A row owned by another organization is reported as not found.
        """
        obj = self.session.get(model, entity_id)
        if obj is None or obj.organization_id != organization_id:
            raise NotFoundError(entity_type, entity_id)
        return obj
