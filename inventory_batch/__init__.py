"""
inventory_batch -- Background low-stock reconciliation.

Two ways of running ``LowStockReconciler.sweep`` outside a request:

    ReconcileScheduler  periodic sweep on a daemon thread (start / stop).
    SweepDispatcher     on-demand sweep after a mutation, fire-and-forget.

``start_inventory_core`` wires both to an engine built from settings.

Architecture:
    inventory_batch/ is a top-level package.  Nothing in kernel/ or
    modules/ imports from inventory_batch; modules receive the dispatcher
    as a plain callable.

Invariants:
    Every sweep runs in its own session and transaction.
    Sweep failures are logged here and never reach the caller.
"""

from inventory_batch.dispatcher import SweepDispatcher
from inventory_batch.runtime import InventoryRuntime, start_inventory_core
from inventory_batch.scheduler import ReconcileScheduler
from inventory_batch.sweep import run_sweep

__all__ = [
    "InventoryRuntime",
    "ReconcileScheduler",
    "SweepDispatcher",
    "run_sweep",
    "start_inventory_core",
]
