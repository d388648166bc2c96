"""
BaseSelector -- abstract base for read-only query selectors.

Selectors accept a Session from the caller, run queries and return frozen
dataclass DTOs rather than ORM instances.  They never add, flush, delete or
commit, and they do not open sessions of their own; the caller's session
and its transaction define the snapshot that is read.
"""

from abc import ABC
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.exceptions import NotFoundError


class BaseSelector(ABC):
    """Abstract base class for all selectors."""

    def __init__(self, session: Session):
        self.session = session

    def _get_scoped(self, model, entity_id: UUID, organization_id: UUID, entity_type: str):
        obj = self.session.get(model, entity_id)
        if obj is None or obj.organization_id != organization_id:
            raise NotFoundError(entity_type, entity_id)
        return obj
