"""
Append-only enforcement for the stock ledger.

Replaying ``stock_movements`` must reproduce every location balance, so a
movement is never edited or deleted once flushed.  Corrections are new
``adjustment`` or ``physical_count`` movements.

Mapper ``before_update`` / ``before_delete`` events reject the flush before
any SQL is sent.  Bulk ``session.execute(update(...))`` statements bypass
mapper events; nothing in the codebase issues them against the ledger.

    register_immutability_listeners()    # once, at startup
    unregister_immutability_listeners()  # test teardown
"""

from sqlalchemy import event

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _reject(operation: str, verb: str):
    def listener(mapper, connection, target):
        logger.error(
            "immutability_violation_blocked",
            extra={
                "entity_type": "StockMovement",
                "entity_id": str(target.id),
                "operation": operation,
            },
        )
        raise ImmutabilityViolationError(
            entity_type="StockMovement",
            entity_id=str(target.id),
            reason=f"Stock movements are append-only and cannot be {verb}",
        )

    return listener


_LISTENERS = {
    "before_update": _reject("UPDATE", "modified"),
    "before_delete": _reject("DELETE", "deleted"),
}


def register_immutability_listeners() -> None:
    """Install the ledger listeners; calling twice installs them once."""
    from inventory_kernel.models.stock_movement import StockMovement

    for event_name, listener in _LISTENERS.items():
        if not event.contains(StockMovement, event_name, listener):
            event.listen(StockMovement, event_name, listener)
    logger.info("immutability_listeners_registered", extra={"entities": ["StockMovement"]})


def unregister_immutability_listeners() -> None:
    from inventory_kernel.models.stock_movement import StockMovement

    for event_name, listener in _LISTENERS.items():
        if event.contains(StockMovement, event_name, listener):
            event.remove(StockMovement, event_name, listener)
