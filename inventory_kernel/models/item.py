"""
Module: inventory_kernel.models.item
Responsibility: ORM persistence for the stocked good.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``stock_quantity`` is a derived cache: the sum of
      ``LocationStock.available_quantity`` over every location holding the
      item.  Only LocationStockStore writes it.
    - ``min_stock`` is the threshold used by the low-stock sweep.

Failure modes:
    - IntegrityError on duplicate SKU.
"""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import QUANTITY, TrackedBase


class ItemStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Item(TrackedBase):
    """
    A stocked good owned by the external catalog.

    The core stores only what stock rules need: thresholds, status, the
    catalog unit cost (used as the default price on requisition-based
    purchase orders) and the cached total quantity.
    """

    __tablename__ = "items"

    __table_args__ = (
        Index("idx_item_status", "status"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True, unique=True)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="kg")
    cost_per_unit: Mapped[Decimal | None] = mapped_column(nullable=True)

    stock_quantity: Mapped[Decimal] = mapped_column(
        QUANTITY, nullable=False, default=Decimal("0"),
    )
    min_stock: Mapped[Decimal] = mapped_column(
        QUANTITY, nullable=False, default=Decimal("0"),
    )
    max_stock: Mapped[Decimal | None] = mapped_column(QUANTITY, nullable=True)

    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=ItemStatus.ACTIVE.value,
    )

    @property
    def is_active(self) -> bool:
        return self.status == ItemStatus.ACTIVE.value

    @property
    def is_below_minimum(self) -> bool:
        return self.stock_quantity < self.min_stock

    def __repr__(self) -> str:
        return f"<Item {self.name} stock={self.stock_quantity} min={self.min_stock}>"
