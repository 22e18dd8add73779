"""Domain models for the inventory kernel."""

from inventory_kernel.models.item import Item, ItemStatus
from inventory_kernel.models.location_stock import LocationStock
from inventory_kernel.models.low_stock_alert import LowStockAlert
from inventory_kernel.models.stock_movement import StockMovement

__all__ = [
    "Item",
    "ItemStatus",
    "LocationStock",
    "LowStockAlert",
    "StockMovement",
]
