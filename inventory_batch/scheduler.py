"""
ReconcileScheduler -- periodic low-stock sweep on a background thread.

Contract:
    ``start()`` launches a daemon thread that sweeps immediately (unless
    ``run_on_start`` is False) and then once every ``interval_seconds``.
    ``stop()`` signals the loop and joins the thread.  ``tick()`` runs one
    sweep synchronously and is public for testing.

Invariants enforced:
    - Timestamps written by the sweep come from the injected Clock.
    - A failed sweep is logged and does not stop the loop.
    - Graceful shutdown: the stop signal is checked between sweeps and
      interrupts the interval wait.
"""

from __future__ import annotations

import threading
from typing import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import SweepResult
from inventory_kernel.logging_config import get_logger

from inventory_batch.sweep import run_sweep

logger = get_logger("batch.scheduler")


class ReconcileScheduler:
    """In-process periodic reconciler.

    Non-goals:
        - NOT a distributed scheduler (no leader election); running it in
          several processes is safe but wasteful.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        interval_seconds: float = 3600,
        run_on_start: bool = True,
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._actor_id = actor_id
        self._interval = interval_seconds
        self._run_on_start = run_on_start
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_result: SweepResult | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> SweepResult | None:
        """Run one sweep.  Returns None when the sweep failed."""
        try:
            result = run_sweep(self._session_factory, self._clock, self._actor_id)
        except Exception:
            logger.exception("scheduled_sweep_failed")
            return None
        self._last_result = result
        return result

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="low-stock-reconciler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "scheduler_started",
            extra={"interval_seconds": self._interval, "run_on_start": self._run_on_start},
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current sweep to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def last_result(self) -> SweepResult | None:
        return self._last_result

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        """Background loop.  Exits when stop_event is set."""
        if not self._run_on_start:
            self._stop_event.wait(timeout=self._interval)
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._interval)
