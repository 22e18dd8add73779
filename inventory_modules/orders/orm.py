"""
Module: inventory_modules.orders.orm
Responsibility: SQLAlchemy ORM persistence for orders and their lines.

Architecture position: Modules > Orders > ORM.  Inherits from TrackedBase
    (inventory_kernel.db.base).  ``location_id`` and ``approver_id``
    reference external entities via UUID columns with NO foreign key.

Invariants enforced:
    - Line quantities are positive (CHECK constraint).
    - ``stock_deducted_at`` is set once, in the transaction that deducted
      the order's stock; OrderService never deducts when it is set.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import QUANTITY, TrackedBase


class OrderModel(TrackedBase):
    """ORM model for a customer / internal order."""

    __tablename__ = "orders"

    __table_args__ = (
        Index("idx_orders_status", "status"),
        Index("idx_orders_location", "location_id"),
    )

    location_id: Mapped[UUID] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    approver_id: Mapped[UUID | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    stock_deducted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    items: Mapped[list["OrderItemModel"]] = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self):
        from inventory_modules.orders.models import Order

        return Order(
            id=self.id,
            location_id=self.location_id,
            status=self.status,
            lines=tuple(item.to_dto() for item in self.items),
            approver_id=self.approver_id,
            notes=self.notes,
            approved_at=self.approved_at,
            stock_deducted_at=self.stock_deducted_at,
        )

    def __repr__(self) -> str:
        return f"<OrderModel {self.id} [{self.status}] lines={len(self.items)}>"


class OrderItemModel(TrackedBase):
    """A line item on an order."""

    __tablename__ = "order_items"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_item_quantity_positive"),
        Index("idx_order_items_order", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)

    order: Mapped["OrderModel"] = relationship("OrderModel", back_populates="items")

    def to_dto(self):
        from inventory_modules.orders.models import OrderLine

        return OrderLine(id=self.id, item_id=self.item_id, quantity=self.quantity)

    def __repr__(self) -> str:
        return f"<OrderItemModel order={self.order_id} item={self.item_id} qty={self.quantity}>"
