"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The inventory event ledger is the source of truth: balances are a projection
of it.  A ledger row that can be edited makes every balance unverifiable.
The same holds for lot history (recall traceability) and for a cycle count
line once its count has been recorded.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept them and check the invariants:

    session.flush()
         |
         v
    [before_update] --> _check_*() --> ImmutabilityViolationError
    [before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | When Immutable                  | Fields
----------------|---------------------------------|----------------------------
InventoryEvent  | ALWAYS (from creation)          | all, no delete
LotHistory      | ALWAYS (from creation)          | all, no delete
CycleCountLine  | Once status = COUNTED           | counted/variance/expected,
                |                                 | status, item, location

Approval columns on a COUNTED line (approval_status, approved_by_user_id,
adjustment_event_id) stay writable: approval is a separate decision
recorded after the count.

===============================================================================
USAGE
===============================================================================

    from inventory_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup (idempotent)

Tests that need to bypass the guard call unregister_immutability_listeners().
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

COUNTED_LINE_FROZEN_FIELDS = frozenset(
    {
        "counted_qty_base",
        "variance_qty_base",
        "expected_qty_base",
        "status",
        "item_id",
        "location_id",
        "cycle_count_id",
    }
)


def _blocked(entity_type: str, entity_id, operation: str, reason: str) -> None:
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
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_inventory_event_update(mapper, connection, target):
    """Ledger rows are append-only."""
    _blocked(
        "InventoryEvent",
        target.id,
        "UPDATE",
        "Ledger events are immutable; post a compensating event instead",
    )


def _check_inventory_event_delete(mapper, connection, target):
    _blocked("InventoryEvent", target.id, "DELETE", "Ledger events cannot be deleted")


def _check_lot_history_update(mapper, connection, target):
    _blocked("LotHistory", target.id, "UPDATE", "Lot history is immutable")


def _check_lot_history_delete(mapper, connection, target):
    _blocked("LotHistory", target.id, "DELETE", "Lot history cannot be deleted")


def _check_cycle_count_line_update(mapper, connection, target):
    """
    Block edits to counted values once a line has reached COUNTED.

    The PENDING -> COUNTED transition itself is allowed: the status history
    shows PENDING as the previous value.
    """
    from inventory_kernel.domain.cycle_count_lifecycle import CountLineStatus

    status_history = get_history(target, "status")
    if status_history.deleted:
        previous = status_history.deleted[0]
    elif status_history.unchanged:
        previous = status_history.unchanged[0]
    else:
        previous = target.status

    if CountLineStatus(previous) != CountLineStatus.COUNTED:
        return

    for field_name in COUNTED_LINE_FROZEN_FIELDS:
        if get_history(target, field_name).has_changes():
            _blocked(
                "CycleCountLine",
                target.id,
                "UPDATE",
                f"Field '{field_name}' is frozen once the line is COUNTED",
            )


def _check_cycle_count_line_delete(mapper, connection, target):
    from inventory_kernel.domain.cycle_count_lifecycle import CountLineStatus

    if CountLineStatus(target.status) == CountLineStatus.COUNTED:
        _blocked("CycleCountLine", target.id, "DELETE", "Counted lines cannot be deleted")


def _listeners():
    from inventory_kernel.models.cycle_count import CycleCountLine
    from inventory_kernel.models.event import InventoryEvent
    from inventory_kernel.models.lot import LotHistory

    return (
        (InventoryEvent, "before_update", _check_inventory_event_update),
        (InventoryEvent, "before_delete", _check_inventory_event_delete),
        (LotHistory, "before_update", _check_lot_history_update),
        (LotHistory, "before_delete", _check_lot_history_delete),
        (CycleCountLine, "before_update", _check_cycle_count_line_update),
        (CycleCountLine, "before_delete", _check_cycle_count_line_delete),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners (safe to call more than once)."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability listeners.

    WARNING: Only for tests that intentionally violate immutability.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
