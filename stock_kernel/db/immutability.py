"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The movement ledger is the canonical audit trail of every quantity change and
the only legitimate source for reconstructing historical stock.  A movement
that could be edited or deleted would make that reconstruction meaningless.

Lots are mutable, but only in a narrow way: remaining quantity goes down,
status moves forward.  The identity and receipt facts of a lot (what, how much,
when, at what cost) are frozen once written.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check the invariants:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

If a check fails, ImmutabilityViolationError propagates out of flush() and
the caller's transaction is rolled back.  The database is never modified.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | Rule
----------------|------------------------------------------------------------
Movement        | ALWAYS immutable; never deleted
Lot             | Receipt fields frozen; remaining never increases;
                | a depleted or expired lot never changes status again;
                | never deleted

updated_at / updated_by_id are audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Lot fields fixed at receipt
LOT_FROZEN_FIELDS = frozenset({
    "lot_number",
    "material_id",
    "warehouse_id",
    "lot_kind",
    "initial_quantity",
    "received_quantity",
    "received_unit",
    "unit",
    "unit_cost",
    "received_at",
    "sequence",
})

# Lot statuses that never transition again
LOT_TERMINAL_STATUSES = frozenset({"depleted", "expired"})


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_movement_immutability(mapper, connection, target):
    """Prevent any updates to Movement records."""
    _blocked(
        "Movement",
        str(target.id),
        "UPDATE",
        "Movements are append-only and cannot be modified",
    )


def _check_movement_delete(mapper, connection, target):
    """Prevent deletion of Movement records."""
    _blocked(
        "Movement",
        str(target.id),
        "DELETE",
        "Movements cannot be deleted",
    )


def _check_lot_immutability(mapper, connection, target):
    """
    Guard lot updates.

    Receipt fields never change; remaining quantity never increases; a lot
    in a terminal status never changes status.
    """
    state = inspect(target)

    for field in LOT_FROZEN_FIELDS:
        if state.attrs[field].history.has_changes():
            _blocked(
                "Lot",
                target.lot_number,
                "UPDATE",
                f"Lot field '{field}' is fixed at receipt",
            )

    remaining_hist = state.attrs["remaining_quantity"].history
    if remaining_hist.deleted and remaining_hist.added:
        old, new = remaining_hist.deleted[0], remaining_hist.added[0]
        if old is not None and new is not None and new > old:
            _blocked(
                "Lot",
                target.lot_number,
                "UPDATE",
                f"Remaining quantity cannot increase ({old} -> {new})",
            )

    status_hist = state.attrs["status"].history
    if status_hist.deleted and status_hist.added:
        old_status = status_hist.deleted[0]
        if old_status in LOT_TERMINAL_STATUSES:
            _blocked(
                "Lot",
                target.lot_number,
                "UPDATE",
                f"Lot in terminal status '{old_status}' cannot change status",
            )


def _check_lot_delete(mapper, connection, target):
    """Prevent deletion of lots."""
    _blocked(
        "Lot",
        target.lot_number,
        "DELETE",
        "Lots cannot be deleted; deplete or expire them instead",
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are left in place.
    """
    from stock_kernel.models.lot import LotModel
    from stock_kernel.models.movement import MovementModel

    for target, event_name, fn in _listeners(LotModel, MovementModel):
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def _listeners(lot_model, movement_model):
    return (
        (movement_model, "before_update", _check_movement_immutability),
        (movement_model, "before_delete", _check_movement_delete),
        (lot_model, "before_update", _check_lot_immutability),
        (lot_model, "before_delete", _check_lot_delete),
    )


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that must violate immutability on purpose.
    """
    from stock_kernel.models.lot import LotModel
    from stock_kernel.models.movement import MovementModel

    for target, event_name, fn in _listeners(LotModel, MovementModel):
        _safe_remove_listener(target, event_name, fn)
