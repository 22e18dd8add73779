"""Kernel services: stock store, ledger, sequences, low-stock reconciler."""

from inventory_kernel.services.location_stock_store import LocationStockStore
from inventory_kernel.services.low_stock_reconciler import LowStockReconciler
from inventory_kernel.services.sequence_service import SequenceCounter, SequenceService
from inventory_kernel.services.stock_ledger import StockLedger

__all__ = [
    "LocationStockStore",
    "LowStockReconciler",
    "SequenceCounter",
    "SequenceService",
    "StockLedger",
]
