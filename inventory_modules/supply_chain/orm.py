"""
Module: inventory_modules.supply_chain.orm
Responsibility: SQLAlchemy ORM persistence models for the supply chain:
    requisitions, purchase orders (with delivery locations), goods received
    notes, purchase entries, and stock transfers, each with its item table.

Architecture position: Modules > Supply Chain > ORM.  Inherits from
    TrackedBase (inventory_kernel.db.base).  Locations, suppliers and users
    are referenced via UUID columns with NO foreign key.  Items reference
    ``items.id``.  Documents reference their predecessors by FK.

Invariants enforced:
    - Document numbers are unique per table.
    - Status / type enums stored as String(50) for portability.
    - Money uses Decimal (Numeric(38,9)); quantities use Numeric(10,3).

Failure modes:
    - IntegrityError on a duplicate document number.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import QUANTITY, TrackedBase


# =============================================================================
# Requisition
# =============================================================================


class RequisitionModel(TrackedBase):
    """Internal request to move stock from a source to a delivery location."""

    __tablename__ = "requisitions"

    __table_args__ = (
        Index("idx_requisition_status", "status"),
        Index("idx_requisition_source", "source_location_id"),
    )

    requisition_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    source_location_id: Mapped[UUID] = mapped_column(nullable=False)
    delivery_location_id: Mapped[UUID] = mapped_column(nullable=False)
    requisition_type: Mapped[str] = mapped_column(
        String(50), nullable=False, default="stock_transfer",
    )
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    expected_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[list["RequisitionItemModel"]] = relationship(
        "RequisitionItemModel",
        back_populates="requisition",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self):
        from inventory_modules.supply_chain.models import (
            Requisition,
            RequisitionPriority,
            RequisitionStatus,
        )

        return Requisition(
            id=self.id,
            requisition_number=self.requisition_number,
            source_location_id=self.source_location_id,
            delivery_location_id=self.delivery_location_id,
            requisition_type=self.requisition_type,
            priority=RequisitionPriority(self.priority),
            status=RequisitionStatus(self.status),
            lines=tuple(item.to_dto() for item in self.items),
            expected_delivery_date=self.expected_delivery_date,
            notes=self.notes,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            received_at=self.received_at,
        )

    def __repr__(self) -> str:
        return f"<RequisitionModel {self.requisition_number} [{self.status}]>"


class RequisitionItemModel(TrackedBase):
    __tablename__ = "requisition_items"

    __table_args__ = (
        Index("idx_requisition_items_requisition", "requisition_id"),
    )

    requisition_id: Mapped[UUID] = mapped_column(ForeignKey("requisitions.id"), nullable=False)
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"), nullable=False)
    quantity_expected: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    quantity_received: Mapped[Decimal | None] = mapped_column(QUANTITY, nullable=True)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="kg")
    estimated_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    requisition: Mapped["RequisitionModel"] = relationship(
        "RequisitionModel", back_populates="items",
    )

    def to_dto(self):
        from inventory_modules.supply_chain.models import RequisitionLine

        return RequisitionLine(
            id=self.id,
            item_id=self.item_id,
            quantity_expected=self.quantity_expected,
            quantity_received=self.quantity_received,
            unit=self.unit,
            estimated_cost=self.estimated_cost,
            notes=self.notes,
        )


# =============================================================================
# Purchase order
# =============================================================================


class PurchaseOrderModel(TrackedBase):
    """Order placed with a supplier."""

    __tablename__ = "purchase_orders"

    __table_args__ = (
        Index("idx_purchase_order_status", "status"),
        Index("idx_purchase_order_supplier", "supplier_id"),
    )

    po_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    supplier_id: Mapped[UUID | None] = mapped_column(nullable=True)
    requisition_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("requisitions.id"), nullable=True,
    )
    order_type: Mapped[str] = mapped_column(String(50), nullable=False, default="direct")
    delivery_type: Mapped[str] = mapped_column(
        String(50), nullable=False, default="single_location",
    )
    central_delivery_location_id: Mapped[UUID | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    expected_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["PurchaseOrderItemModel"]] = relationship(
        "PurchaseOrderItemModel",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    delivery_locations: Mapped[list["PODeliveryLocationModel"]] = relationship(
        "PODeliveryLocationModel",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self):
        from inventory_modules.supply_chain.models import (
            DeliveryType,
            PurchaseOrder,
            PurchaseOrderStatus,
            PurchaseOrderType,
        )

        return PurchaseOrder(
            id=self.id,
            po_number=self.po_number,
            supplier_id=self.supplier_id,
            order_type=PurchaseOrderType(self.order_type),
            delivery_type=DeliveryType(self.delivery_type),
            status=PurchaseOrderStatus(self.status),
            total_amount=self.total_amount,
            lines=tuple(item.to_dto() for item in self.items),
            delivery_locations=tuple(loc.to_dto() for loc in self.delivery_locations),
            requisition_id=self.requisition_id,
            central_delivery_location_id=self.central_delivery_location_id,
            expected_delivery_date=self.expected_delivery_date,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.po_number} [{self.status}] total={self.total_amount}>"


class PurchaseOrderItemModel(TrackedBase):
    __tablename__ = "purchase_order_items"

    __table_args__ = (
        Index("idx_purchase_order_items_po", "purchase_order_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="kg")
    unit_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    delivery_location_id: Mapped[UUID | None] = mapped_column(nullable=True)
    # UUID strings of the requisition lines this PO line aggregates
    requisition_item_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)

    purchase_order: Mapped["PurchaseOrderModel"] = relationship(
        "PurchaseOrderModel", back_populates="items",
    )

    def to_dto(self):
        from inventory_modules.supply_chain.models import PurchaseOrderLine

        return PurchaseOrderLine(
            id=self.id,
            item_id=self.item_id,
            quantity=self.quantity,
            unit=self.unit,
            unit_price=self.unit_price,
            total_price=self.total_price,
            delivery_location_id=self.delivery_location_id,
            requisition_item_ids=tuple(UUID(v) for v in (self.requisition_item_ids or ())),
        )


class PODeliveryLocationModel(TrackedBase):
    __tablename__ = "po_delivery_locations"

    __table_args__ = (
        Index("idx_po_delivery_locations_po", "purchase_order_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    location_id: Mapped[UUID] = mapped_column(nullable=False)
    delivery_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    expected_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    purchase_order: Mapped["PurchaseOrderModel"] = relationship(
        "PurchaseOrderModel", back_populates="delivery_locations",
    )

    def to_dto(self):
        from inventory_modules.supply_chain.models import PurchaseOrderDeliveryLocation

        return PurchaseOrderDeliveryLocation(
            id=self.id,
            location_id=self.location_id,
            delivery_address=self.delivery_address,
            expected_delivery_date=self.expected_delivery_date,
        )


# =============================================================================
# Goods received note
# =============================================================================


class GRNModel(TrackedBase):
    """One physical delivery event."""

    __tablename__ = "grns"

    __table_args__ = (
        Index("idx_grn_purchase_order", "purchase_order_id"),
        Index("idx_grn_destination", "destination_location_id"),
        Index("idx_grn_status", "status"),
    )

    grn_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    batch_id: Mapped[str] = mapped_column(String(50), nullable=False)
    purchase_order_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=True,
    )
    supplier_id: Mapped[UUID | None] = mapped_column(nullable=True)
    destination_location_id: Mapped[UUID] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="received")
    is_direct_grn: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    receiver_id: Mapped[UUID | None] = mapped_column(nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    delivery_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    subtotal_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    discount_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    items: Mapped[list["GRNItemModel"]] = relationship(
        "GRNItemModel",
        back_populates="grn",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self):
        from inventory_modules.supply_chain.models import GoodsReceivedNote, GRNStatus

        return GoodsReceivedNote(
            id=self.id,
            grn_number=self.grn_number,
            batch_id=self.batch_id,
            destination_location_id=self.destination_location_id,
            status=GRNStatus(self.status),
            is_direct_grn=self.is_direct_grn,
            subtotal_amount=self.subtotal_amount,
            discount_amount=self.discount_amount,
            total_amount=self.total_amount,
            lines=tuple(item.to_dto() for item in self.items),
            purchase_order_id=self.purchase_order_id,
            supplier_id=self.supplier_id,
            received_at=self.received_at,
            receiver_id=self.receiver_id,
            invoice_number=self.invoice_number,
            delivery_notes=self.delivery_notes,
        )

    def __repr__(self) -> str:
        return f"<GRNModel {self.grn_number} [{self.status}]>"


class GRNItemModel(TrackedBase):
    __tablename__ = "grn_items"

    __table_args__ = (
        Index("idx_grn_items_grn", "grn_id"),
    )

    grn_id: Mapped[UUID] = mapped_column(ForeignKey("grns.id"), nullable=False)
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"), nullable=False)
    quantity_expected: Mapped[Decimal | None] = mapped_column(QUANTITY, nullable=True)
    quantity_received: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="kg")
    unit_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    expected_unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    expected_total_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    batch_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    item_type: Mapped[str] = mapped_column(String(20), nullable=False, default="non_perishable")
    grn_type: Mapped[str] = mapped_column(String(20), nullable=False, default="grn")
    reject_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    grn: Mapped["GRNModel"] = relationship("GRNModel", back_populates="items")

    def to_dto(self):
        from inventory_modules.supply_chain.models import GRNItemSource, GRNLine, Perishability

        return GRNLine(
            id=self.id,
            item_id=self.item_id,
            quantity_expected=self.quantity_expected,
            quantity_received=self.quantity_received,
            unit=self.unit,
            unit_cost=self.unit_cost,
            total_cost=self.total_cost,
            expected_unit_cost=self.expected_unit_cost,
            expected_total_cost=self.expected_total_cost,
            batch_number=self.batch_number,
            expiry_date=self.expiry_date,
            perishability=Perishability(self.item_type),
            source=GRNItemSource(self.grn_type),
            reject_reason=self.reject_reason,
            notes=self.notes,
        )


# =============================================================================
# Purchase entry
# =============================================================================


class PurchaseEntryModel(TrackedBase):
    """Payment / accounting record for a receipt."""

    __tablename__ = "purchase_entries"

    __table_args__ = (
        Index("idx_purchase_entry_po", "purchase_order_id"),
        Index("idx_purchase_entry_grn", "grn_id"),
        Index("idx_purchase_entry_payment_status", "payment_status"),
    )

    pe_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    purchase_order_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=True,
    )
    grn_id: Mapped[UUID | None] = mapped_column(ForeignKey("grns.id"), nullable=True)
    supplier_id: Mapped[UUID | None] = mapped_column(nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    invoice_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    amount_paid: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    payment_status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_direct_pe: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["PurchaseEntryItemModel"]] = relationship(
        "PurchaseEntryItemModel",
        back_populates="purchase_entry",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self):
        from inventory_modules.supply_chain.models import PaymentStatus, PurchaseEntry

        return PurchaseEntry(
            id=self.id,
            pe_number=self.pe_number,
            payment_status=PaymentStatus(self.payment_status),
            total_amount=self.total_amount,
            amount_paid=self.amount_paid,
            is_direct_pe=self.is_direct_pe,
            lines=tuple(item.to_dto() for item in self.items),
            purchase_order_id=self.purchase_order_id,
            grn_id=self.grn_id,
            supplier_id=self.supplier_id,
            invoice_number=self.invoice_number,
            invoice_date=self.invoice_date,
            payment_method=self.payment_method,
            payment_reference=self.payment_reference,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<PurchaseEntryModel {self.pe_number} [{self.payment_status}]>"


class PurchaseEntryItemModel(TrackedBase):
    __tablename__ = "purchase_entry_items"

    __table_args__ = (
        Index("idx_purchase_entry_items_pe", "purchase_entry_id"),
    )

    purchase_entry_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_entries.id"), nullable=False,
    )
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    quantity_expected: Mapped[Decimal | None] = mapped_column(QUANTITY, nullable=True)
    quantity_received: Mapped[Decimal | None] = mapped_column(QUANTITY, nullable=True)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="kg")
    price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    batch_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    storage_location: Mapped[str | None] = mapped_column(String(100), nullable=True)
    quality_check: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    purchase_entry: Mapped["PurchaseEntryModel"] = relationship(
        "PurchaseEntryModel", back_populates="items",
    )

    def to_dto(self):
        from inventory_modules.supply_chain.models import PurchaseEntryLine

        return PurchaseEntryLine(
            id=self.id,
            item_id=self.item_id,
            quantity=self.quantity,
            price=self.price,
            total=self.total,
            unit=self.unit,
            quantity_expected=self.quantity_expected,
            quantity_received=self.quantity_received,
            batch_number=self.batch_number,
            expiry_date=self.expiry_date,
            storage_location=self.storage_location,
            quality_check=self.quality_check,
            notes=self.notes,
        )


# =============================================================================
# Stock transfer
# =============================================================================


class StockTransferModel(TrackedBase):
    """Movement of stock between two locations."""

    __tablename__ = "stock_transfers"

    __table_args__ = (
        Index("idx_stock_transfer_status", "status"),
        Index("idx_stock_transfer_source", "source_location_id"),
        Index("idx_stock_transfer_destination", "destination_location_id"),
    )

    transfer_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    source_location_id: Mapped[UUID] = mapped_column(nullable=False)
    destination_location_id: Mapped[UUID] = mapped_column(nullable=False)
    transfer_type: Mapped[str] = mapped_column(String(50), nullable=False, default="manual")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")

    # Originating documents (at most one is normally set)
    requisition_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("requisitions.id"), nullable=True,
    )
    purchase_order_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=True,
    )
    grn_id: Mapped[UUID | None] = mapped_column(ForeignKey("grns.id"), nullable=True)
    purchase_entry_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("purchase_entries.id"), nullable=True,
    )

    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["StockTransferItemModel"]] = relationship(
        "StockTransferItemModel",
        back_populates="transfer",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self):
        from inventory_modules.supply_chain.models import (
            StockTransfer,
            TransferStatus,
            TransferType,
        )

        return StockTransfer(
            id=self.id,
            transfer_number=self.transfer_number,
            source_location_id=self.source_location_id,
            destination_location_id=self.destination_location_id,
            transfer_type=TransferType(self.transfer_type),
            status=TransferStatus(self.status),
            lines=tuple(item.to_dto() for item in self.items),
            requisition_id=self.requisition_id,
            purchase_order_id=self.purchase_order_id,
            grn_id=self.grn_id,
            purchase_entry_id=self.purchase_entry_id,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            dispatched_at=self.dispatched_at,
            received_at=self.received_at,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<StockTransferModel {self.transfer_number} [{self.status}]>"


class StockTransferItemModel(TrackedBase):
    __tablename__ = "stock_transfer_items"

    __table_args__ = (
        Index("idx_stock_transfer_items_transfer", "transfer_id"),
    )

    transfer_id: Mapped[UUID] = mapped_column(ForeignKey("stock_transfers.id"), nullable=False)
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"), nullable=False)
    quantity_requested: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    quantity_dispatched: Mapped[Decimal] = mapped_column(
        QUANTITY, nullable=False, default=Decimal("0"),
    )
    quantity_received: Mapped[Decimal] = mapped_column(
        QUANTITY, nullable=False, default=Decimal("0"),
    )
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="kg")
    batch_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    cost_per_unit: Mapped[Decimal | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    transfer: Mapped["StockTransferModel"] = relationship(
        "StockTransferModel", back_populates="items",
    )

    def to_dto(self):
        from inventory_modules.supply_chain.models import StockTransferLine

        return StockTransferLine(
            id=self.id,
            item_id=self.item_id,
            quantity_requested=self.quantity_requested,
            quantity_dispatched=self.quantity_dispatched,
            quantity_received=self.quantity_received,
            unit=self.unit,
            cost_per_unit=self.cost_per_unit,
            batch_number=self.batch_number,
            expiry_date=self.expiry_date,
            notes=self.notes,
        )
