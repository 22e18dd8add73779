"""
Module: inventory_kernel.models.low_stock_alert
Responsibility: ORM persistence for per-item low-stock alert state.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Exactly one row per item (unique item_id).  The reconciler flips
      ``resolved`` instead of inserting a second row.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import QUANTITY, TrackedBase
from inventory_kernel.domain.dtos import LowStockAlertRecord


class LowStockAlert(TrackedBase):
    """Alert state for one item."""

    __tablename__ = "low_stock_alerts"

    __table_args__ = (
        Index("idx_low_stock_alert_resolved", "resolved"),
    )

    item_id: Mapped[UUID] = mapped_column(
        ForeignKey("items.id"), nullable=False, unique=True,
    )
    current_stock: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    min_stock_threshold: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    alert_created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    def to_dto(self) -> LowStockAlertRecord:
        return LowStockAlertRecord(
            id=self.id,
            item_id=self.item_id,
            current_stock=self.current_stock,
            min_stock_threshold=self.min_stock_threshold,
            resolved=self.resolved,
            notes=self.notes,
            alert_created_at=self.alert_created_at,
        )

    def __repr__(self) -> str:
        state = "resolved" if self.resolved else "open"
        return f"<LowStockAlert item={self.item_id} [{state}] stock={self.current_stock}>"
