"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the HTTP layer, batch jobs, tests) must be able to tell a business
rejection ("not enough stock") from a caller mistake ("no fields to update")
and from a system fault ("the database went away") without parsing message
text.  Every exception therefore has:

  1. A TYPED class (catch by type, not by message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (item ids, quantities, states)

Example:
    try:
        orders.update_status(order_id, "approved", actor_id=actor)
    except StockShortageError as e:
        return {"error": e.code, "shortages": [s.item_id for s in e.shortages]}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryKernelError (base)
    |
    +-- NotFoundError
    |   +-- LocationStockNotFoundError
    |
    +-- ValidationFailureError
    |   +-- InvalidTransitionError
    |
    +-- StockShortageError
    |
    +-- ConflictError
    |
    +-- ImmutabilityViolationError
    |
    +-- InternalError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                     | When Raised
-------------------------|-------------------------------------------------
NOT_FOUND                | Entity id absent
LOCATION_STOCK_NOT_FOUND | No stock row for a (location, item) pair
VALIDATION_FAILURE       | Empty patch, non-positive quantity, bad field
INVALID_TRANSITION       | Workflow step attempted from the wrong state
STOCK_SHORTAGE           | Requested quantity exceeds available stock
CONFLICT                 | Duplicate unique key
IMMUTABILITY_VIOLATION   | UPDATE or DELETE of a stock movement
INTERNAL                 | Database / driver failure (message is generic)

===============================================================================
DESIGN DECISIONS
===============================================================================

1. InternalError never carries the driver's message.  The original
   exception is chained (``raise ... from exc``) and logged at the service
   boundary; callers only see the operation name.

2. Order creation reports shortages through ``OrderResult`` rather than by
   raising ``StockShortageError``.  The exception is used where a shortage
   must abort a larger transaction (approval of an existing order).

===============================================================================
"""

from __future__ import annotations

from typing import Any


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


class NotFoundError(InventoryKernelError):
    """Entity with the given id was not found."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


class LocationStockNotFoundError(NotFoundError):
    """No LocationStock row exists for the (location, item) pair."""

    code: str = "LOCATION_STOCK_NOT_FOUND"

    def __init__(self, location_id: Any, item_id: Any):
        self.location_id = str(location_id)
        self.item_id = str(item_id)
        InventoryKernelError.__init__(
            self,
            f"Location stock record not found for item {item_id}",
        )
        self.entity_type = "LocationStock"
        self.entity_id = f"{location_id}:{item_id}"


class ValidationFailureError(InventoryKernelError):
    """Input rejected before any write was attempted."""

    code: str = "VALIDATION_FAILURE"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidTransitionError(ValidationFailureError):
    """A workflow step was attempted from a state that does not allow it."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        from_state: str,
        action: str,
        guard: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.from_state = from_state
        self.action = action
        self.guard = guard
        message = f"Cannot {action} {entity_type} {entity_id} in status '{from_state}'"
        if guard is not None:
            message += f": guard '{guard}' not satisfied"
        super().__init__(message, field="status")


class StockShortageError(InventoryKernelError):
    """
    Requested quantity exceeds available stock.

    A business rejection, not a system fault.  ``shortages`` holds one
    ``Shortage`` per offending item.
    """

    code: str = "STOCK_SHORTAGE"

    def __init__(self, location_id: Any, shortages: tuple):
        self.location_id = str(location_id)
        self.shortages = tuple(shortages)
        details = ", ".join(
            f"item {s.item_id} (requested {s.requested}, available {s.available})"
            for s in self.shortages
        )
        super().__init__(f"Insufficient stock at location {location_id}: {details}")


class ConflictError(InventoryKernelError):
    """A unique key already exists."""

    code: str = "CONFLICT"

    def __init__(self, entity_type: str, key: str):
        self.entity_type = entity_type
        self.key = key
        super().__init__(f"{entity_type} already exists: {key}")


class ImmutabilityViolationError(InventoryKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class InternalError(InventoryKernelError):
    """Database or driver failure.  The message never includes driver text."""

    code: str = "INTERNAL"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Internal error during {operation}")
