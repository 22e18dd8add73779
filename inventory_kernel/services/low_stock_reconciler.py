"""
LowStockReconciler -- keeps exactly one alert row per item in step with stock.

Responsibility:
    Compares every active item's cached ``stock_quantity`` with its
    ``min_stock`` and inserts or flips that item's LowStockAlert row.

Architecture position:
    Kernel > Services.  Driven by ``inventory_batch.scheduler`` (hourly)
    and ``inventory_batch.dispatcher`` (after order mutations).  It is an
    ordinary object with an injected session; there is no process-wide
    instance.

Invariants enforced:
    - Exactly one alert row per item (unique item_id; a concurrent insert
      is absorbed by re-reading the winner's row).
    - Idempotent: with no stock change between two sweeps, the second
      sweep issues no INSERT or UPDATE.

Decision table (low = stock_quantity < min_stock):

    low | existing alert     | action
    ----|--------------------|------------------------------------------
    yes | none               | insert resolved=False, "Alert starting"
    yes | resolved=True      | flip to False, "Alert starting"
    no  | resolved=False     | flip to True, "Alert resolved"
    no  | none               | insert resolved=True, "Alert resolved"
    *   | already matching   | no write

Transaction boundary:
    Flushes, never commits.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import LowStockAlertRecord, SweepResult
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.item import Item, ItemStatus
from inventory_kernel.models.low_stock_alert import LowStockAlert

logger = get_logger("services.low_stock_reconciler")

ALERT_STARTING = "Alert starting"
ALERT_RESOLVED = "Alert resolved"

# Sweep outcomes per item
_INSERTED = "inserted"
_REOPENED = "reopened"
_RESOLVED = "resolved"
_UNCHANGED = "unchanged"


class LowStockReconciler:
    """
    Recomputes low-stock alert state.

    Usage:
        reconciler = LowStockReconciler(session, clock, actor_id)
        result = reconciler.sweep()
        session.commit()
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        # System actor for rows written by background sweeps
        self._actor_id = actor_id or UUID(int=0)

    def sweep(self) -> SweepResult:
        """Reconcile the alert row of every active item."""
        items = self._session.execute(
            select(Item)
            .where(Item.status == ItemStatus.ACTIVE.value)
            .order_by(Item.id)
            .execution_options(populate_existing=True)
        ).scalars().all()

        counts = {_INSERTED: 0, _REOPENED: 0, _RESOLVED: 0, _UNCHANGED: 0}
        for item in items:
            counts[self._reconcile_item(item)] += 1

        result = SweepResult(
            items_checked=len(items),
            inserted=counts[_INSERTED],
            reopened=counts[_REOPENED],
            resolved=counts[_RESOLVED],
            unchanged=counts[_UNCHANGED],
        )
        logger.info(
            "low_stock_sweep_completed",
            extra={
                "items_checked": result.items_checked,
                "inserted": result.inserted,
                "reopened": result.reopened,
                "resolved": result.resolved,
                "unchanged": result.unchanged,
            },
        )
        return result

    def get_alert(self, item_id: UUID) -> LowStockAlertRecord | None:
        alert = self._session.execute(
            select(LowStockAlert).where(LowStockAlert.item_id == item_id)
        ).scalar_one_or_none()
        return alert.to_dto() if alert else None

    def list_alerts(self, resolved: bool | None = None) -> list[LowStockAlertRecord]:
        stmt = select(LowStockAlert).order_by(LowStockAlert.alert_created_at.desc())
        if resolved is not None:
            stmt = stmt.where(LowStockAlert.resolved == resolved)
        return [a.to_dto() for a in self._session.execute(stmt).scalars().all()]

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _reconcile_item(self, item: Item) -> str:
        low = item.stock_quantity < item.min_stock
        alert = self._lock_alert(item.id)

        if alert is None:
            savepoint = self._session.begin_nested()
            try:
                self._session.add(
                    LowStockAlert(
                        item_id=item.id,
                        current_stock=item.stock_quantity,
                        min_stock_threshold=item.min_stock,
                        resolved=not low,
                        notes=ALERT_STARTING if low else ALERT_RESOLVED,
                        alert_created_at=self._clock.now(),
                        created_by_id=self._actor_id,
                    )
                )
                self._session.flush()
                savepoint.commit()
                logger.info(
                    "low_stock_alert_inserted",
                    extra={"item_id": str(item.id), "low": low},
                )
                return _INSERTED
            except IntegrityError:
                # A concurrent sweep inserted first; evaluate against its row
                savepoint.rollback()
                logger.debug(
                    "low_stock_alert_insert_race",
                    extra={"item_id": str(item.id)},
                )
                alert = self._lock_alert(item.id)
                if alert is None:
                    raise

        if low and alert.resolved:
            self._flip(alert, item, resolved=False, notes=ALERT_STARTING)
            return _REOPENED
        if not low and not alert.resolved:
            self._flip(alert, item, resolved=True, notes=ALERT_RESOLVED)
            return _RESOLVED
        return _UNCHANGED

    def _flip(self, alert: LowStockAlert, item: Item, *, resolved: bool, notes: str) -> None:
        alert.resolved = resolved
        alert.notes = notes
        alert.current_stock = item.stock_quantity
        alert.min_stock_threshold = item.min_stock
        alert.updated_by_id = self._actor_id
        if not resolved:
            alert.alert_created_at = self._clock.now()
        self._session.flush()
        logger.info(
            "low_stock_alert_flipped",
            extra={"item_id": str(item.id), "resolved": resolved},
        )

    def _lock_alert(self, item_id: UUID) -> LowStockAlert | None:
        return self._session.execute(
            select(LowStockAlert)
            .where(LowStockAlert.item_id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
