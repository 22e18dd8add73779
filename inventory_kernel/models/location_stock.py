"""
Module: inventory_kernel.models.location_stock
Responsibility: ORM persistence for the per-(location, item) balance.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (location_id, item_id) is unique -- one balance row per pair.
    - available_quantity >= 0 (CHECK constraint; LocationStockStore floors
      subtractions at zero so the constraint is never the first line).
    - Mutated only through LocationStockStore under a row lock.

Failure modes:
    - IntegrityError on a duplicate pair (concurrent lazy creation; the
      store retries under a savepoint).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import QUANTITY, TrackedBase
from inventory_kernel.domain.dtos import LocationStockBalance


class LocationStock(TrackedBase):
    """
    Balance of one item at one location.

    ``location_id`` references the external location catalog (no FK).
    """

    __tablename__ = "location_stocks"

    __table_args__ = (
        UniqueConstraint("location_id", "item_id", name="uq_location_stock_pair"),
        CheckConstraint("available_quantity >= 0", name="ck_location_stock_available_nonneg"),
        Index("idx_location_stock_item", "item_id"),
        Index("idx_location_stock_location", "location_id"),
    )

    location_id: Mapped[UUID] = mapped_column(nullable=False)
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"), nullable=False)

    available_quantity: Mapped[Decimal] = mapped_column(
        QUANTITY, nullable=False, default=Decimal("0"),
    )
    reserved_quantity: Mapped[Decimal] = mapped_column(
        QUANTITY, nullable=False, default=Decimal("0"),
    )
    allocated_quantity: Mapped[Decimal] = mapped_column(
        QUANTITY, nullable=False, default=Decimal("0"),
    )
    min_quantity: Mapped[Decimal] = mapped_column(
        QUANTITY, nullable=False, default=Decimal("0"),
    )
    max_quantity: Mapped[Decimal] = mapped_column(
        QUANTITY, nullable=False, default=Decimal("0"),
    )

    last_updated: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def to_dto(self) -> LocationStockBalance:
        return LocationStockBalance(
            id=self.id,
            location_id=self.location_id,
            item_id=self.item_id,
            available_quantity=self.available_quantity,
            reserved_quantity=self.reserved_quantity,
            allocated_quantity=self.allocated_quantity,
            min_quantity=self.min_quantity,
            max_quantity=self.max_quantity,
            last_updated=self.last_updated,
        )

    def __repr__(self) -> str:
        return (
            f"<LocationStock location={self.location_id} item={self.item_id} "
            f"available={self.available_quantity}>"
        )
