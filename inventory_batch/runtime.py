"""
InventoryRuntime -- process wiring for the inventory core.

``start_inventory_core(settings)`` brings up everything a host process
(web server, worker) needs: logging at the configured level, the engine
and session factory, the ledger immutability listeners, the on-demand
sweep dispatcher and the periodic reconcile scheduler.  The returned
runtime's ``shutdown()`` stops the background threads and disposes of
the engine.

Usage::

    runtime = start_inventory_core(load_settings("inventory.yaml"))
    with runtime.session() as session:
        orders = OrderService(session, on_mutation=runtime.dispatcher.request_sweep)
        ...
    runtime.shutdown()
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from inventory_kernel.config import InventorySettings
from inventory_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from inventory_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.logging_config import configure_logging, get_logger

from inventory_batch.dispatcher import SweepDispatcher
from inventory_batch.scheduler import ReconcileScheduler

logger = get_logger("batch.runtime")


@dataclass
class InventoryRuntime:
    settings: InventorySettings
    session_factory: sessionmaker[Session]
    dispatcher: SweepDispatcher
    scheduler: ReconcileScheduler

    def session(self) -> Session:
        return self.session_factory()

    def shutdown(self, timeout: float = 30.0) -> None:
        self.scheduler.stop(timeout=timeout)
        self.dispatcher.shutdown(wait=True)
        unregister_immutability_listeners()
        reset_engine()
        logger.info("inventory_core_stopped")


def start_inventory_core(
    settings: InventorySettings,
    *,
    clock: Clock | None = None,
    actor_id: UUID | None = None,
    create_schema: bool = False,
    start_scheduler: bool = True,
) -> InventoryRuntime:
    """
    Initialize the core from ``settings``.

    Args:
        create_schema: create missing tables (local runs and tests; deployed
            databases are migrated separately).
        start_scheduler: start the periodic sweep thread right away.
    """
    configure_logging(level=settings.log_level)
    init_engine_from_url(
        settings.database_url,
        echo=settings.echo_sql,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
    )
    register_immutability_listeners()
    if create_schema:
        create_tables()

    clock = clock or SystemClock()
    session_factory = get_session_factory()
    dispatcher = SweepDispatcher(session_factory, clock, actor_id)
    scheduler = ReconcileScheduler(
        session_factory,
        clock,
        actor_id,
        interval_seconds=settings.reconcile_interval_seconds,
        run_on_start=settings.reconcile_on_start,
    )
    if start_scheduler:
        scheduler.start()

    logger.info(
        "inventory_core_started",
        extra={
            "reconcile_interval_seconds": settings.reconcile_interval_seconds,
            "scheduler_running": scheduler.is_running,
        },
    )
    return InventoryRuntime(
        settings=settings,
        session_factory=session_factory,
        dispatcher=dispatcher,
        scheduler=scheduler,
    )
