"""
Module: hub_kernel.db.immutability
Responsibility: ORM-level enforcement of append-only persistence for the
    status history log and for settled stock reservations.
Architecture position: Kernel > DB.  Imports kernel models lazily inside
    register/unregister so db/ stays importable on its own.

Invariants enforced:
    - StatusHistoryEntry rows are never updated or deleted.
    - StockReservation rows are never deleted.  Once a hold leaves "held"
      it may only move confirmed -> refunded; released and refunded holds
      are frozen.

Failure modes:
    - ImmutabilityViolationError raised from the flush that attempts the
      forbidden write.  The session must be rolled back by its owner.

Audit relevance:
    Status history is the audit trail for every lifecycle change; holds
    trace every reserved unit to its holder.  Neither may be rewritten.
"""

from sqlalchemy import event, inspect

from hub_kernel.exceptions import ImmutabilityViolationError
from hub_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Settlement edges allowed after a hold leaves "held".
_SETTLED_EDGES = {("confirmed", "refunded")}


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
        entity_type=entity_type, entity_id=entity_id, reason=reason,
    )


def _check_status_history_update(mapper, connection, target):
    _blocked(
        "StatusHistoryEntry", str(target.id), "UPDATE",
        "Status history entries cannot be modified",
    )


def _check_status_history_delete(mapper, connection, target):
    _blocked(
        "StatusHistoryEntry", str(target.id), "DELETE",
        "Status history entries cannot be deleted",
    )


def _check_reservation_update(mapper, connection, target):
    history = inspect(target).attrs.status.history
    old = history.deleted[0] if history.deleted else target.status
    if old == "held":
        return
    if (old, target.status) in _SETTLED_EDGES:
        return
    _blocked(
        "StockReservation", str(target.id), "UPDATE",
        f"Reservation already settled as {old}",
    )


def _check_reservation_delete(mapper, connection, target):
    _blocked(
        "StockReservation", str(target.id), "DELETE",
        "Stock reservations cannot be deleted",
    )


_LISTENERS = (
    ("StatusHistoryEntry", "before_update", _check_status_history_update),
    ("StatusHistoryEntry", "before_delete", _check_status_history_delete),
    ("StockReservationModel", "before_update", _check_reservation_update),
    ("StockReservationModel", "before_delete", _check_reservation_delete),
)


def _models():
    from hub_kernel.models.status_history import StatusHistoryEntry
    from hub_kernel.models.stock import StockReservationModel

    return {
        "StatusHistoryEntry": StatusHistoryEntry,
        "StockReservationModel": StockReservationModel,
    }


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners.

    Call once during application initialization.  Repeated calls are
    harmless.
    """
    models = _models()
    for model_name, event_name, fn in _LISTENERS:
        target = models[model_name]
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that must rewrite history on purpose.
    """
    models = _models()
    for model_name, event_name, fn in _LISTENERS:
        target = models[model_name]
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
