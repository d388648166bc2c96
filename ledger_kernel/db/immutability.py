"""
Module: ledger_kernel.db.immutability
Responsibility: ORM event listeners that make posted financial records
    append-only.
Architecture position: Kernel > DB.  Imports models lazily inside the
    listener functions.

Invariants enforced:
    - Journals and journal lines are never updated or deleted once written.
      Corrections go through JournalService.reverse_journal().
    - Inventory movements are never updated or deleted.
    - Inventory layers keep their quantity_original and unit_cost for life;
      only quantity_remaining changes, and layers are never deleted.

Failure modes:
    - ImmutabilityViolationError raised from inside flush.  The flush
      fails, and the enclosing savepoint/transaction must be rolled back.

Design note:
    These listeners guard the ORM path only.  Bulk UPDATE/DELETE statements
    and raw SQL bypass them.
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Layer columns that may never change after insert
_LAYER_FROZEN_FIELDS = ("quantity_original", "unit_cost", "item_id", "warehouse_id", "sequence", "created_at")

# TrackedBase audit columns are metadata, not financial data
_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _block(entity_type: str, entity_id, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _changed_fields(target, fields) -> list[str]:
    return [f for f in fields if get_history(target, f).has_changes()]


def _check_append_only_update(mapper, connection, target):
    changed = [
        attr.key
        for attr in mapper.column_attrs
        if attr.key not in _AUDIT_FIELDS and get_history(target, attr.key).has_changes()
    ]
    if changed:
        _block(
            type(target).__name__,
            target.id,
            "UPDATE",
            f"posted records are append-only (changed: {', '.join(changed)})",
        )


def _check_journal_delete(mapper, connection, target):
    _block(type(target).__name__, target.id, "DELETE", "posted records cannot be deleted")


def _check_movement_delete(mapper, connection, target):
    _block("InventoryMovement", target.id, "DELETE", "movements are append-only")


def _check_layer_update(mapper, connection, target):
    changed = _changed_fields(target, _LAYER_FROZEN_FIELDS)
    if changed:
        _block(
            "InventoryLayer",
            target.id,
            "UPDATE",
            f"only quantity_remaining may change (changed: {', '.join(changed)})",
        )


def _check_layer_delete(mapper, connection, target):
    _block("InventoryLayer", target.id, "DELETE", "layers are retained for history")


def _listeners():
    from ledger_kernel.models.inventory import InventoryLayer, InventoryMovement
    from ledger_kernel.models.journal import Journal, JournalLine

    return (
        (Journal, "before_update", _check_append_only_update),
        (Journal, "before_delete", _check_journal_delete),
        (JournalLine, "before_update", _check_append_only_update),
        (JournalLine, "before_delete", _check_journal_delete),
        (InventoryMovement, "before_update", _check_append_only_update),
        (InventoryMovement, "before_delete", _check_movement_delete),
        (InventoryLayer, "before_update", _check_layer_update),
        (InventoryLayer, "before_delete", _check_layer_delete),
    )


def register_immutability_listeners() -> None:
    """Install the append-only listeners (idempotent)."""
    for model, event_name, fn in _listeners():
        if not event.contains(model, event_name, fn):
            event.listen(model, event_name, fn)
    logger.debug("immutability_listeners_registered")


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """Remove the listeners.  FOR TESTING ONLY."""
    for model, event_name, fn in _listeners():
        _safe_remove_listener(model, event_name, fn)
    logger.debug("immutability_listeners_unregistered")
