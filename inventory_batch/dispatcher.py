"""
SweepDispatcher -- fire-and-forget sweep after a mutation.

``request_sweep()`` hands a sweep to a single worker thread and returns at
once, so the caller's response never waits on (or fails because of) the
reconciler.  Requests that arrive while a sweep is already queued share
that queued sweep: it has not started yet, so it will see their changes.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import SweepResult
from inventory_kernel.logging_config import get_logger

from inventory_batch.sweep import run_sweep

logger = get_logger("batch.dispatcher")


class SweepDispatcher:
    """Single-worker, coalescing sweep dispatcher.

    Usage:
        dispatcher = SweepDispatcher(get_session_factory())
        orders = OrderService(session, clock, on_mutation=dispatcher.request_sweep)
        ...
        dispatcher.shutdown()
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        actor_id: UUID | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._actor_id = actor_id
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sweep")
        self._lock = threading.Lock()
        self._queued: Future | None = None
        self._closed = False

    def request_sweep(self) -> Future | None:
        """Queue a sweep (or join the one already queued).  Never raises.

        Returns the future of the queued sweep, or None after shutdown.
        """
        with self._lock:
            if self._closed:
                logger.warning("sweep_request_after_shutdown")
                return None
            if self._queued is not None:
                logger.debug("sweep_request_coalesced")
                return self._queued

            future = self._executor.submit(self._run)
            self._queued = future
        future.add_done_callback(self._on_done)
        logger.debug("sweep_requested")
        return future

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)
        logger.info("sweep_dispatcher_stopped", extra={"wait": wait})

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run(self) -> SweepResult:
        with self._lock:
            # From here on, new requests queue a fresh sweep.
            self._queued = None
        return run_sweep(self._session_factory, self._clock, self._actor_id)

    def _on_done(self, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("dispatched_sweep_failed", exc_info=exc)
            return
        result = future.result()
        logger.info(
            "dispatched_sweep_completed",
            extra={"items_checked": result.items_checked, "writes": result.writes},
        )
