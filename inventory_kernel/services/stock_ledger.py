"""
StockLedger -- append-only writer for stock movements.

Responsibility:
    Records one StockMovement per balance mutation.  Always called by
    LocationStockStore inside the same transaction as the balance change it
    documents, so either both are committed or neither is.

Architecture position:
    Kernel > Services.  Read paths live in
    ``inventory_kernel.selectors.movement_selector``.

Invariants enforced:
    - previous_quantity + quantity == new_quantity.
    - movement_type and reference_type are members of their enums.
    - sequence comes from the locked ``stock_movement`` counter, so replay
      order equals commit order per (location, item) pair.

Failure modes:
    - ValidationFailureError on an unknown movement/reference type or an
      inconsistent previous/new pair.  The caller's transaction rolls back
      and the balance change is discarded with it.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    MovementType,
    ReferenceType,
    StockMovementRecord,
    coerce_enum,
)
from inventory_kernel.exceptions import ValidationFailureError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.stock_movement import StockMovement
from inventory_kernel.services.sequence_service import SequenceService

logger = get_logger("services.stock_ledger")


class StockLedger:
    """
    Writes stock movements.  Flushes, never commits.

    Usage:
        ledger = StockLedger(session, clock)
        ledger.record(
            item_id=item_id, location_id=location_id,
            movement_type=MovementType.SALE, quantity=Decimal("-5"),
            reference_type=ReferenceType.ORDER, reference_id=order_id,
            previous_quantity=Decimal("10"), new_quantity=Decimal("5"),
            actor_id=actor_id,
        )
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def record(
        self,
        item_id: UUID,
        location_id: UUID,
        movement_type: MovementType | str,
        quantity: Decimal,
        reference_type: ReferenceType | str,
        reference_id: UUID | None,
        previous_quantity: Decimal,
        new_quantity: Decimal,
        *,
        actor_id: UUID,
        unit_cost: Decimal | None = None,
        notes: str | None = None,
    ) -> StockMovementRecord:
        """
        Append one ledger row.

        Preconditions:
            - Called inside the transaction that changed the balance.
        Postconditions:
            - The row is flushed with the next ledger sequence number.

        Raises:
            ValidationFailureError: unknown enum value or
                previous + quantity != new.
        """
        movement = coerce_enum(MovementType, movement_type, "movement_type")
        reference = coerce_enum(ReferenceType, reference_type, "reference_type")

        if previous_quantity + quantity != new_quantity:
            raise ValidationFailureError(
                f"Ledger arithmetic mismatch: {previous_quantity} + {quantity} "
                f"!= {new_quantity}",
                field="quantity",
            )

        row = StockMovement(
            sequence=self._sequences.next_value(SequenceService.STOCK_MOVEMENT),
            item_id=item_id,
            location_id=location_id,
            movement_type=movement.value,
            quantity=quantity,
            reference_type=reference.value,
            reference_id=reference_id,
            previous_quantity=previous_quantity,
            new_quantity=new_quantity,
            unit_cost=unit_cost,
            notes=notes,
            created_by_id=actor_id,
            created_at=self._clock.now(),
        )
        self._session.add(row)
        self._session.flush()

        logger.info(
            "stock_movement_recorded",
            extra={
                "movement_id": str(row.id),
                "sequence": row.sequence,
                "item_id": str(item_id),
                "location_id": str(location_id),
                "movement_type": movement.value,
                "quantity": str(quantity),
                "reference_type": reference.value,
                "reference_id": str(reference_id) if reference_id else None,
            },
        )
        return row.to_dto()
