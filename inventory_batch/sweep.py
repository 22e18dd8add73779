"""
One reconciliation sweep in its own session.

Shared by the scheduler and the dispatcher.  Commits on success; on
failure rolls back and re-raises so that each caller decides how to log.
"""

from __future__ import annotations

from typing import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import SweepResult
from inventory_kernel.services.low_stock_reconciler import LowStockReconciler


def run_sweep(
    session_factory: Callable[[], Session],
    clock: Clock | None = None,
    actor_id: UUID | None = None,
) -> SweepResult:
    session = session_factory()
    try:
        result = LowStockReconciler(session, clock, actor_id).sweep()
        session.commit()
        return result
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
