"""
Inventory Kernel DTOs (``inventory_kernel.domain.dtos``).

Responsibility
--------------
Frozen value objects exchanged between the kernel services and their
callers: stock balances, availability reports, bulk-update outcomes,
ledger rows and summaries, low-stock alert state, and the patch type
used for location stock updates.

Architecture
------------
Layer: **Kernel > Domain** -- pure data, no I/O.  ORM models convert to
these via ``to_dto()``; services return them so that callers never hold
a live ORM object across a session boundary.

Invariants
----------
- ``LocationStockPatch`` only names the five patchable columns; there is
  no way to address any other column through it.
- All quantities are ``Decimal`` -- never ``float``.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from inventory_kernel.exceptions import ValidationFailureError


def coerce_enum(enum_cls, value, field_name: str):
    """Return ``value`` as a member of ``enum_cls``; unknown values are a validation error."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationFailureError(
            f"Invalid {field_name} {value!r}; expected one of: {allowed}",
            field=field_name,
        ) from None


class QuantityType(Enum):
    """Which balance column an adjustment targets."""
    AVAILABLE = "available"
    RESERVED = "reserved"
    ALLOCATED = "allocated"


class StockOperation(Enum):
    ADD = "add"
    SUBTRACT = "subtract"
    SET = "set"


class MovementType(Enum):
    """Cause category of a ledger row."""
    PURCHASE = "purchase"
    SALE = "sale"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    ADJUSTMENT = "adjustment"
    PHYSICAL_COUNT = "physical_count"


class ReferenceType(Enum):
    """Kind of document a ledger row points back to."""
    PURCHASE_ENTRY = "purchase_entry"
    GRN = "grn"
    ORDER = "order"
    STOCK_TRANSFER = "stock_transfer"
    ADJUSTMENT = "adjustment"
    PHYSICAL_COUNT = "physical_count"


INBOUND_MOVEMENT_TYPES = frozenset({MovementType.PURCHASE, MovementType.TRANSFER_IN})
OUTBOUND_MOVEMENT_TYPES = frozenset({MovementType.SALE, MovementType.TRANSFER_OUT})


# -----------------------------------------------------------------------------
# Location stock
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class LocationStockBalance:
    """Balance of one item at one location."""
    id: UUID
    location_id: UUID
    item_id: UUID
    available_quantity: Decimal
    reserved_quantity: Decimal
    allocated_quantity: Decimal
    min_quantity: Decimal
    max_quantity: Decimal
    last_updated: datetime | None = None


@dataclass(frozen=True)
class StockRequest:
    """A requested quantity of one item."""
    item_id: UUID
    quantity: Decimal


@dataclass(frozen=True)
class Shortage:
    item_id: UUID
    requested: Decimal
    available: Decimal


@dataclass(frozen=True)
class AvailabilityReport:
    available: bool
    shortages: tuple[Shortage, ...] = ()


@dataclass(frozen=True)
class LocationStockPatch:
    """
    Fixed set of column assignments for one (location, item) row.

    ``None`` means "leave unchanged".  A patch with every field ``None``
    is rejected with "No fields to update".
    """
    item_id: UUID
    available_quantity: Decimal | None = None
    reserved_quantity: Decimal | None = None
    allocated_quantity: Decimal | None = None
    min_quantity: Decimal | None = None
    max_quantity: Decimal | None = None

    def assignments(self) -> dict[str, Decimal]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "item_id" and getattr(self, f.name) is not None
        }


@dataclass(frozen=True)
class BulkUpdateError:
    index: int
    item_id: UUID
    error: str
    code: str


@dataclass(frozen=True)
class BulkUpdateResult:
    success: tuple[LocationStockBalance, ...] = ()
    errors: tuple[BulkUpdateError, ...] = ()


# -----------------------------------------------------------------------------
# Ledger
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class StockMovementRecord:
    """One immutable ledger row."""
    id: UUID
    sequence: int
    item_id: UUID
    location_id: UUID
    movement_type: MovementType
    quantity: Decimal
    reference_type: ReferenceType
    reference_id: UUID | None
    previous_quantity: Decimal
    new_quantity: Decimal
    unit_cost: Decimal | None
    notes: str | None
    created_by_id: UUID
    created_at: datetime


@dataclass(frozen=True)
class MovementTypeTotal:
    movement_type: MovementType
    count: int
    quantity: Decimal


@dataclass(frozen=True)
class LedgerSummary:
    total_movements: int
    total_in: Decimal
    total_out: Decimal
    net_movement: Decimal
    by_movement_type: tuple[MovementTypeTotal, ...] = field(default_factory=tuple)


# -----------------------------------------------------------------------------
# Low stock alerts
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class LowStockAlertRecord:
    id: UUID
    item_id: UUID
    current_stock: Decimal
    min_stock_threshold: Decimal
    resolved: bool
    notes: str | None
    alert_created_at: datetime


@dataclass(frozen=True)
class SweepResult:
    """Counts of what one reconciliation sweep did."""
    items_checked: int = 0
    inserted: int = 0
    reopened: int = 0
    resolved: int = 0
    unchanged: int = 0

    @property
    def writes(self) -> int:
        return self.inserted + self.reopened + self.resolved
