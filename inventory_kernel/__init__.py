"""
Inventory Kernel

The consistency core of the inventory system:
- Per-location stock balances under row locks
- Append-only stock ledger
- Non-negative available quantities
- Low-stock alert reconciliation
"""

__version__ = "0.1.0"
