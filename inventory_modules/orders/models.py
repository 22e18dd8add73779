"""
Order Domain Models (``inventory_modules.orders.models``).

Frozen value objects for customer / internal orders and the typed result
returned by ``OrderService``.  ``status`` is a free-form string; only
``approved`` has stock effects.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from inventory_kernel.domain.dtos import Shortage, StockRequest


class OrderStatus(str, Enum):
    """Well-known order states.  Other strings are accepted as-is."""
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderOutcome(Enum):
    CREATED = "created"
    UPDATED = "updated"
    SHORTAGE = "shortage"


@dataclass(frozen=True)
class OrderLine:
    id: UUID
    item_id: UUID
    quantity: Decimal


@dataclass(frozen=True)
class Order:
    id: UUID
    location_id: UUID
    status: str
    lines: tuple[OrderLine, ...]
    approver_id: UUID | None = None
    notes: str | None = None
    approved_at: datetime | None = None
    stock_deducted_at: datetime | None = None

    @property
    def is_approved(self) -> bool:
        return self.status == OrderStatus.APPROVED.value


@dataclass(frozen=True)
class OrderPatch:
    """
    Fixed set of order assignments.  ``None`` leaves a field unchanged.

    ``items`` replaces every line; only allowed before stock is deducted.
    """
    status: str | None = None
    items: tuple[StockRequest, ...] | None = None
    approver_id: UUID | None = None
    notes: str | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.status is None
            and self.items is None
            and self.approver_id is None
            and self.notes is None
        )


@dataclass(frozen=True)
class OrderResult:
    """
    Outcome of an order mutation.

    A shortage is a business rejection, reported here rather than raised,
    so that callers can tell it apart from a system error.
    """
    outcome: OrderOutcome
    order: Order | None = None
    shortages: tuple[Shortage, ...] = ()
    message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.outcome in (OrderOutcome.CREATED, OrderOutcome.UPDATED)

    @classmethod
    def created(cls, order: Order) -> "OrderResult":
        return cls(outcome=OrderOutcome.CREATED, order=order)

    @classmethod
    def updated(cls, order: Order) -> "OrderResult":
        return cls(outcome=OrderOutcome.UPDATED, order=order)

    @classmethod
    def shortage(cls, shortages: tuple[Shortage, ...]) -> "OrderResult":
        first = shortages[0]
        return cls(
            outcome=OrderOutcome.SHORTAGE,
            shortages=shortages,
            message=(
                f"Insufficient stock for item {first.item_id}: "
                f"requested {first.requested}, available {first.available}"
            ),
        )
