"""
Module: inventory_kernel.selectors.movement_selector
Responsibility: Read paths over the stock ledger: movements by item, by
    location, by causing document, an aggregate summary, and balance replay.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - Listings are newest first (descending ledger sequence).
    - ``replay_balance`` sums signed quantities in ascending sequence; for
      every pair it equals LocationStock.available_quantity.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from inventory_kernel.domain.dtos import (
    INBOUND_MOVEMENT_TYPES,
    OUTBOUND_MOVEMENT_TYPES,
    LedgerSummary,
    MovementType,
    MovementTypeTotal,
    ReferenceType,
    StockMovementRecord,
    coerce_enum,
)
from inventory_kernel.models.stock_movement import StockMovement
from inventory_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")


class MovementSelector(BaseSelector[StockMovement]):
    """Query the append-only stock ledger."""

    def by_item(
        self,
        item_id: UUID,
        location_id: UUID | None = None,
        limit: int | None = None,
    ) -> list[StockMovementRecord]:
        stmt = select(StockMovement).where(StockMovement.item_id == item_id)
        if location_id is not None:
            stmt = stmt.where(StockMovement.location_id == location_id)
        return self._list(stmt, limit)

    def by_location(
        self,
        location_id: UUID,
        limit: int | None = None,
    ) -> list[StockMovementRecord]:
        stmt = select(StockMovement).where(StockMovement.location_id == location_id)
        return self._list(stmt, limit)

    def by_reference(
        self,
        reference_type: ReferenceType | str,
        reference_id: UUID,
    ) -> list[StockMovementRecord]:
        ref = coerce_enum(ReferenceType, reference_type, "reference_type").value
        stmt = select(StockMovement).where(
            StockMovement.reference_type == ref,
            StockMovement.reference_id == reference_id,
        )
        return self._list(stmt, None)

    def summary(
        self,
        location_id: UUID | None = None,
        item_id: UUID | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> LedgerSummary:
        """
        Aggregate movement counts and quantities over an optional filter.

        total_in sums purchase and transfer_in rows; total_out is the
        magnitude of sale and transfer_out rows; adjustments and physical
        counts appear only in the per-type breakdown.
        """
        stmt = select(
            StockMovement.movement_type,
            func.count(StockMovement.id),
            func.coalesce(func.sum(StockMovement.quantity), 0),
        ).group_by(StockMovement.movement_type)

        if location_id is not None:
            stmt = stmt.where(StockMovement.location_id == location_id)
        if item_id is not None:
            stmt = stmt.where(StockMovement.item_id == item_id)
        if date_from is not None:
            stmt = stmt.where(StockMovement.created_at >= date_from)
        if date_to is not None:
            stmt = stmt.where(StockMovement.created_at <= date_to)

        totals = [
            MovementTypeTotal(
                movement_type=MovementType(movement_type),
                count=int(count),
                quantity=Decimal(str(quantity)),
            )
            for movement_type, count, quantity in self.session.execute(stmt).all()
        ]
        totals.sort(key=lambda t: (-t.count, t.movement_type.value))

        total_in = sum(
            (t.quantity for t in totals if t.movement_type in INBOUND_MOVEMENT_TYPES),
            ZERO,
        )
        total_out = -sum(
            (t.quantity for t in totals if t.movement_type in OUTBOUND_MOVEMENT_TYPES),
            ZERO,
        )

        return LedgerSummary(
            total_movements=sum(t.count for t in totals),
            total_in=total_in,
            total_out=total_out,
            net_movement=total_in - total_out,
            by_movement_type=tuple(totals),
        )

    def replay_balance(self, item_id: UUID, location_id: UUID) -> Decimal:
        quantities = self.session.execute(
            select(StockMovement.quantity)
            .where(
                StockMovement.item_id == item_id,
                StockMovement.location_id == location_id,
            )
            .order_by(StockMovement.sequence.asc())
        ).scalars().all()
        balance = ZERO
        for quantity in quantities:
            balance += quantity
        return balance

    def _list(self, stmt, limit: int | None) -> list[StockMovementRecord]:
        stmt = stmt.order_by(StockMovement.sequence.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return [row.to_dto() for row in self.session.execute(stmt).scalars().all()]
