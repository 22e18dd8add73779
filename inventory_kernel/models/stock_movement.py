"""
Module: inventory_kernel.models.stock_movement
Responsibility: ORM persistence for the append-only stock ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (ORM listeners in db/immutability.py).
      There is deliberately no updated_at / updated_by_id column.
    - ``sequence`` is unique and strictly increasing, allocated by
      SequenceService.  Replaying rows for a (location, item) pair in
      sequence order and summing ``quantity`` reproduces the balance.
    - previous_quantity + quantity == new_quantity (checked by StockLedger).

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import QUANTITY, Base, UUIDString
from inventory_kernel.domain.dtos import MovementType, ReferenceType, StockMovementRecord


class StockMovement(Base):
    """
    One immutable ledger row describing a single quantity change and its cause.

    ``quantity`` is signed: positive for stock in, negative for stock out.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        Index("idx_stock_movement_item_location", "item_id", "location_id"),
        Index("idx_stock_movement_location", "location_id"),
        Index("idx_stock_movement_reference", "reference_type", "reference_id"),
        Index("idx_stock_movement_created", "created_at"),
    )

    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"), nullable=False)
    location_id: Mapped[UUID] = mapped_column(nullable=False)

    movement_type: Mapped[str] = mapped_column(String(50), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)

    reference_type: Mapped[str] = mapped_column(String(50), nullable=False)
    reference_id: Mapped[UUID | None] = mapped_column(nullable=True)

    previous_quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    new_quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)

    unit_cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_dto(self) -> StockMovementRecord:
        return StockMovementRecord(
            id=self.id,
            sequence=self.sequence,
            item_id=self.item_id,
            location_id=self.location_id,
            movement_type=MovementType(self.movement_type),
            quantity=self.quantity,
            reference_type=ReferenceType(self.reference_type),
            reference_id=self.reference_id,
            previous_quantity=self.previous_quantity,
            new_quantity=self.new_quantity,
            unit_cost=self.unit_cost,
            notes=self.notes,
            created_by_id=self.created_by_id,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return (
            f"<StockMovement #{self.sequence} {self.movement_type} "
            f"item={self.item_id} qty={self.quantity}>"
        )
