"""
LocationStockStore -- per (location, item) balances under row locks.

Responsibility:
    The single write path for LocationStock.  Every change of
    ``available_quantity`` is mirrored into the StockLedger and into the
    cached ``Item.stock_quantity`` in the same transaction.

Architecture position:
    Kernel > Services.  Used by OrderService and the supply-chain services;
    also the target of direct stock adjustments from the HTTP layer.

Invariants enforced:
    - available_quantity is never negative: ``subtract`` floors at zero.
    - Read-modify-write happens under ``SELECT ... FOR UPDATE`` on the
      pair's row, so concurrent adjustments serialize.
    - Ledger row and balance change share one transaction.
    - Item.stock_quantity == sum of available_quantity over locations.

Failure modes:
    - LocationStockNotFoundError when the pair has no row (unless the
      caller asked for lazy creation).
    - ValidationFailureError on a negative amount, an unknown operation or
      quantity type, or an empty patch.
    - Bulk operations never raise for a single item; they collect errors.

Transaction boundary:
    Flushes, never commits.  Bulk operations wrap every item in its own
    SAVEPOINT so a failed item leaves the others intact.
"""

from collections import OrderedDict
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    AvailabilityReport,
    BulkUpdateError,
    BulkUpdateResult,
    LocationStockBalance,
    LocationStockPatch,
    MovementType,
    QuantityType,
    ReferenceType,
    Shortage,
    StockOperation,
    StockRequest,
    coerce_enum,
)
from inventory_kernel.exceptions import (
    ConflictError,
    InventoryKernelError,
    LocationStockNotFoundError,
    NotFoundError,
    ValidationFailureError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.item import Item
from inventory_kernel.models.location_stock import LocationStock
from inventory_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.location_stock")

ZERO = Decimal("0")


def aggregate_requests(requests: Iterable[StockRequest]) -> "OrderedDict[UUID, Decimal]":
    """Sum requested quantities per item, keeping first-seen order."""
    totals: OrderedDict[UUID, Decimal] = OrderedDict()
    for request in requests:
        totals[request.item_id] = totals.get(request.item_id, ZERO) + Decimal(request.quantity)
    return totals


class LocationStockStore:
    """
    Atomic balance operations for (location, item) pairs.

    Usage:
        store = LocationStockStore(session, clock)
        balance = store.adjust(
            location_id, item_id, Decimal("3"), StockOperation.SUBTRACT,
            actor_id=actor_id,
        )
        session.commit()
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger: StockLedger | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._ledger = ledger or StockLedger(session, self._clock)

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, location_id: UUID, item_id: UUID) -> LocationStockBalance:
        row = self._find(location_id, item_id)
        if row is None:
            raise LocationStockNotFoundError(location_id, item_id)
        return row.to_dto()

    def list_for_location(self, location_id: UUID) -> list[LocationStockBalance]:
        rows = self._session.execute(
            select(LocationStock).where(LocationStock.location_id == location_id)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def list_for_item(self, item_id: UUID) -> list[LocationStockBalance]:
        rows = self._session.execute(
            select(LocationStock).where(LocationStock.item_id == item_id)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def check_availability(
        self,
        location_id: UUID,
        requests: Sequence[StockRequest],
    ) -> AvailabilityReport:
        """
        Report which requested items exceed available stock.

        Read-only and unlocked: the answer may be stale by the time a later
        adjust runs.  Callers needing check-then-deduct must use ``lock``.
        A missing row counts as zero available.
        """
        totals = aggregate_requests(requests)
        if not totals:
            return AvailabilityReport(available=True)

        rows = self._session.execute(
            select(LocationStock).where(
                LocationStock.location_id == location_id,
                LocationStock.item_id.in_(list(totals)),
            )
        ).scalars().all()
        on_hand = {row.item_id: row.available_quantity for row in rows}

        shortages = tuple(
            Shortage(item_id=item_id, requested=requested, available=on_hand.get(item_id, ZERO))
            for item_id, requested in totals.items()
            if requested > on_hand.get(item_id, ZERO)
        )
        return AvailabilityReport(available=not shortages, shortages=shortages)

    # =========================================================================
    # Locking
    # =========================================================================

    def lock(
        self,
        location_id: UUID,
        item_id: UUID,
        *,
        create_missing: bool = False,
        actor_id: UUID | None = None,
    ) -> LocationStock | None:
        """
        Lock and return the pair's row (``SELECT ... FOR UPDATE``).

        With ``create_missing`` a zero row is inserted under a savepoint;
        a concurrent insert of the same pair is absorbed by re-locking.
        """
        row = self._select_for_update(location_id, item_id)
        if row is not None or not create_missing:
            return row

        self._require_item(item_id)
        savepoint = self._session.begin_nested()
        try:
            row = LocationStock(
                location_id=location_id,
                item_id=item_id,
                available_quantity=ZERO,
                reserved_quantity=ZERO,
                allocated_quantity=ZERO,
                min_quantity=ZERO,
                max_quantity=ZERO,
                created_by_id=actor_id,
                last_updated=self._clock.now(),
            )
            self._session.add(row)
            self._session.flush()
            savepoint.commit()
            logger.info(
                "location_stock_created",
                extra={"location_id": str(location_id), "item_id": str(item_id)},
            )
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "location_stock_create_race_retry",
                extra={"location_id": str(location_id), "item_id": str(item_id)},
            )
            row = self._select_for_update(location_id, item_id)
            if row is None:
                raise
        return row

    def lock_and_check(
        self,
        location_id: UUID,
        totals: "OrderedDict[UUID, Decimal]",
    ) -> tuple[Shortage, ...]:
        """
        Lock every pair in sorted item order and return the items whose
        requested total exceeds ``available``.  A missing row counts as zero.

        The locks are held until the caller's transaction ends, so a
        subtract that follows an empty result cannot be clamped.
        """
        available: dict[UUID, Decimal] = {}
        for item_id in sorted(totals, key=str):
            row = self.lock(location_id, item_id)
            available[item_id] = row.available_quantity if row is not None else ZERO

        return tuple(
            Shortage(item_id=item_id, requested=requested, available=available[item_id])
            for item_id, requested in totals.items()
            if requested > available[item_id]
        )

    # =========================================================================
    # Mutations
    # =========================================================================

    def create(
        self,
        location_id: UUID,
        item_id: UUID,
        *,
        actor_id: UUID,
        available_quantity: Decimal = ZERO,
        reserved_quantity: Decimal = ZERO,
        allocated_quantity: Decimal = ZERO,
        min_quantity: Decimal = ZERO,
        max_quantity: Decimal = ZERO,
    ) -> LocationStockBalance:
        """
        Explicitly create a balance row.

        An opening available quantity is ledgered as an ``adjustment`` so
        that replay from the first movement reproduces the balance.

        Raises:
            ConflictError: the pair already has a row.
            NotFoundError: the item does not exist.
        """
        _require_non_negative(
            available_quantity=available_quantity,
            reserved_quantity=reserved_quantity,
            allocated_quantity=allocated_quantity,
            min_quantity=min_quantity,
            max_quantity=max_quantity,
        )
        if self._find(location_id, item_id) is not None:
            raise ConflictError("LocationStock", f"{location_id}:{item_id}")
        self._require_item(item_id)

        savepoint = self._session.begin_nested()
        try:
            row = LocationStock(
                location_id=location_id,
                item_id=item_id,
                available_quantity=ZERO,
                reserved_quantity=reserved_quantity,
                allocated_quantity=allocated_quantity,
                min_quantity=min_quantity,
                max_quantity=max_quantity,
                created_by_id=actor_id,
                last_updated=self._clock.now(),
            )
            self._session.add(row)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise ConflictError("LocationStock", f"{location_id}:{item_id}") from None

        row = self._select_for_update(location_id, item_id)
        if available_quantity:
            self._set_available(
                row,
                Decimal(available_quantity),
                actor_id=actor_id,
                movement_type=MovementType.ADJUSTMENT,
                reference_type=ReferenceType.ADJUSTMENT,
                reference_id=None,
                unit_cost=None,
                notes="Opening balance",
            )
        self._session.flush()
        return row.to_dto()

    def adjust(
        self,
        location_id: UUID,
        item_id: UUID,
        quantity: Decimal,
        operation: StockOperation | str,
        quantity_type: QuantityType | str = QuantityType.AVAILABLE,
        *,
        actor_id: UUID,
        movement_type: MovementType | str = MovementType.ADJUSTMENT,
        reference_type: ReferenceType | str = ReferenceType.ADJUSTMENT,
        reference_id: UUID | None = None,
        unit_cost: Decimal | None = None,
        notes: str | None = None,
        create_missing: bool = False,
    ) -> LocationStockBalance:
        """
        Add to, subtract from, or overwrite one balance column.

        ``subtract`` floors at zero instead of failing.  ``set`` overwrites
        unconditionally.  Only changes to ``available`` are ledgered.

        Raises:
            ValidationFailureError: negative quantity or unknown
                operation / quantity type.
            LocationStockNotFoundError: no row and ``create_missing`` is False.
        """
        op = coerce_enum(StockOperation, operation, "operation")
        qtype = coerce_enum(QuantityType, quantity_type, "quantity_type")
        quantity = Decimal(quantity)
        if quantity < 0:
            raise ValidationFailureError(
                f"Quantity must not be negative, got {quantity}", field="quantity",
            )

        row = self.lock(location_id, item_id, create_missing=create_missing, actor_id=actor_id)
        if row is None:
            raise LocationStockNotFoundError(location_id, item_id)

        column = f"{qtype.value}_quantity"
        current = getattr(row, column)
        if op is StockOperation.ADD:
            new_value = current + quantity
        elif op is StockOperation.SUBTRACT:
            new_value = max(ZERO, current - quantity)
        else:
            new_value = quantity

        if qtype is QuantityType.AVAILABLE:
            self._set_available(
                row,
                new_value,
                actor_id=actor_id,
                movement_type=movement_type,
                reference_type=reference_type,
                reference_id=reference_id,
                unit_cost=unit_cost,
                notes=notes,
            )
        else:
            setattr(row, column, new_value)
            row.last_updated = self._clock.now()
            row.updated_by_id = actor_id

        self._session.flush()
        logger.info(
            "location_stock_adjusted",
            extra={
                "location_id": str(location_id),
                "item_id": str(item_id),
                "quantity_type": qtype.value,
                "operation": op.value,
                "amount": str(quantity),
                "previous": str(current),
                "new": str(new_value),
            },
        )
        return row.to_dto()

    def bulk_update(
        self,
        location_id: UUID,
        patches: Sequence[LocationStockPatch],
        *,
        actor_id: UUID,
    ) -> BulkUpdateResult:
        """
        Apply several patches, each independently.

        A failed patch (missing row, empty patch, negative value) is rolled
        back to its own savepoint and reported in ``errors``; the others
        are kept.  Database faults still propagate.
        """
        success: list[LocationStockBalance] = []
        errors: list[BulkUpdateError] = []

        for index, patch in enumerate(patches):
            savepoint = self._session.begin_nested()
            try:
                balance = self._apply_patch(location_id, patch, actor_id)
                savepoint.commit()
                success.append(balance)
            except InventoryKernelError as exc:
                savepoint.rollback()
                errors.append(
                    BulkUpdateError(
                        index=index, item_id=patch.item_id, error=str(exc), code=exc.code,
                    )
                )
                logger.warning(
                    "bulk_update_item_failed",
                    extra={
                        "location_id": str(location_id),
                        "index": index,
                        "item_id": str(patch.item_id),
                        "error_code": exc.code,
                    },
                )

        logger.info(
            "bulk_update_completed",
            extra={
                "location_id": str(location_id),
                "updated": len(success),
                "failed": len(errors),
            },
        )
        return BulkUpdateResult(success=tuple(success), errors=tuple(errors))

    def bulk_create(
        self,
        location_id: UUID,
        entries: Sequence[LocationStockPatch],
        *,
        actor_id: UUID,
    ) -> BulkUpdateResult:
        """Create several balance rows, each independently (same policy as bulk_update)."""
        success: list[LocationStockBalance] = []
        errors: list[BulkUpdateError] = []

        for index, entry in enumerate(entries):
            savepoint = self._session.begin_nested()
            try:
                values = entry.assignments()
                balance = self.create(location_id, entry.item_id, actor_id=actor_id, **values)
                savepoint.commit()
                success.append(balance)
            except InventoryKernelError as exc:
                savepoint.rollback()
                errors.append(
                    BulkUpdateError(
                        index=index, item_id=entry.item_id, error=str(exc), code=exc.code,
                    )
                )
                logger.warning(
                    "bulk_create_item_failed",
                    extra={
                        "location_id": str(location_id),
                        "index": index,
                        "item_id": str(entry.item_id),
                        "error_code": exc.code,
                    },
                )

        return BulkUpdateResult(success=tuple(success), errors=tuple(errors))

    def refresh_item_stock(self, item_id: UUID) -> Decimal:
        """Recompute Item.stock_quantity from the location balances."""
        item = self._session.execute(
            select(Item)
            .where(Item.id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if item is None:
            raise NotFoundError("Item", item_id)

        total = self._session.execute(
            select(func.coalesce(func.sum(LocationStock.available_quantity), 0))
            .where(LocationStock.item_id == item_id)
        ).scalar_one()
        item.stock_quantity = Decimal(str(total))
        self._session.flush()
        return item.stock_quantity

    # =========================================================================
    # Internal
    # =========================================================================

    def _apply_patch(
        self,
        location_id: UUID,
        patch: LocationStockPatch,
        actor_id: UUID,
    ) -> LocationStockBalance:
        assignments = patch.assignments()
        if not assignments:
            raise ValidationFailureError("No fields to update")
        _require_non_negative(**assignments)

        row = self.lock(location_id, patch.item_id)
        if row is None:
            raise LocationStockNotFoundError(location_id, patch.item_id)

        new_available = assignments.pop("available_quantity", None)
        for column, value in assignments.items():
            setattr(row, column, Decimal(value))
        row.last_updated = self._clock.now()
        row.updated_by_id = actor_id

        if new_available is not None:
            self._set_available(
                row,
                Decimal(new_available),
                actor_id=actor_id,
                movement_type=MovementType.ADJUSTMENT,
                reference_type=ReferenceType.ADJUSTMENT,
                reference_id=None,
                unit_cost=None,
                notes="Bulk update",
            )
        self._session.flush()
        return row.to_dto()

    def _set_available(
        self,
        row: LocationStock,
        new_value: Decimal,
        *,
        actor_id: UUID,
        movement_type,
        reference_type,
        reference_id: UUID | None,
        unit_cost: Decimal | None,
        notes: str | None,
    ) -> None:
        previous = row.available_quantity
        row.available_quantity = new_value
        row.last_updated = self._clock.now()
        row.updated_by_id = actor_id
        self._session.flush()

        self._ledger.record(
            item_id=row.item_id,
            location_id=row.location_id,
            movement_type=movement_type,
            quantity=new_value - previous,
            reference_type=reference_type,
            reference_id=reference_id,
            previous_quantity=previous,
            new_quantity=new_value,
            actor_id=actor_id,
            unit_cost=unit_cost,
            notes=notes,
        )
        self.refresh_item_stock(row.item_id)

    def _find(self, location_id: UUID, item_id: UUID) -> LocationStock | None:
        return self._session.execute(
            select(LocationStock).where(
                LocationStock.location_id == location_id,
                LocationStock.item_id == item_id,
            )
        ).scalar_one_or_none()

    def _select_for_update(self, location_id: UUID, item_id: UUID) -> LocationStock | None:
        return self._session.execute(
            select(LocationStock)
            .where(
                LocationStock.location_id == location_id,
                LocationStock.item_id == item_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _require_item(self, item_id: UUID) -> None:
        if self._session.get(Item, item_id) is None:
            raise NotFoundError("Item", item_id)


def _require_non_negative(**values: Decimal) -> None:
    for name, value in values.items():
        if value is not None and Decimal(value) < 0:
            raise ValidationFailureError(
                f"{name} must not be negative, got {value}", field=name,
            )
