"""
Orders Module (``inventory_modules.orders``).

Customer / internal orders that draw stock from one location.  The only
status with stock effects is ``approved``: entering it deducts every line
from the location under row locks, exactly once per order.
"""

from inventory_modules.orders.models import (
    Order,
    OrderLine,
    OrderOutcome,
    OrderPatch,
    OrderResult,
    OrderStatus,
)
from inventory_modules.orders.service import OrderService

__all__ = [
    "Order",
    "OrderLine",
    "OrderOutcome",
    "OrderPatch",
    "OrderResult",
    "OrderService",
    "OrderStatus",
]
