"""
Supply Chain Domain Models (``inventory_modules.supply_chain.models``).

Responsibility
--------------
Frozen value objects for the five supply-chain documents -- requisitions,
purchase orders, goods received notes, purchase entries and stock
transfers -- plus the input types the services accept.

Architecture
------------
Layer: **Modules** -- pure data structures, no I/O.  ORM rows convert to
the document DTOs via ``to_dto()``; callers build the ``*Input`` types.

Invariants
----------
- All quantities and money use ``Decimal`` -- never ``float``.
- Status fields on DTOs are the enum members; the database stores their
  ``value``.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from inventory_kernel.logging_config import get_logger

logger = get_logger("modules.supply_chain.models")


# -----------------------------------------------------------------------------
# Status / classification enums
# -----------------------------------------------------------------------------


class RequisitionStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    RECEIVED = "received"


class RequisitionPriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class PurchaseOrderStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    ORDERED = "ordered"
    PARTIALLY_RECEIVED = "partially_received"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PurchaseOrderType(Enum):
    DIRECT = "direct"
    CONSOLIDATED = "consolidated"
    REQUISITION_BASED = "requisition_based"


class DeliveryType(Enum):
    SINGLE_LOCATION = "single_location"
    MULTIPLE_LOCATIONS = "multiple_locations"


class GRNStatus(Enum):
    RECEIVED = "received"
    PARTIAL = "partial"
    REJECTED = "rejected"


class Perishability(Enum):
    PERISHABLE = "perishable"
    NON_PERISHABLE = "non_perishable"


class GRNItemSource(Enum):
    """Whether a GRN line was received against a PO line or directly."""
    GRN = "grn"
    DIRECT = "direct"


class PaymentStatus(Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETED = "completed"


class TransferStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DISPATCHED = "dispatched"
    IN_TRANSIT = "in_transit"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class TransferType(Enum):
    MANUAL = "manual"
    REQUISITION_FULFILLMENT = "requisition_fulfillment"
    PRODUCTION_OUTPUT = "production_output"
    REPLENISHMENT = "replenishment"
    PO_DISTRIBUTION = "po_distribution"


# -----------------------------------------------------------------------------
# Inputs
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class RequisitionItemInput:
    item_id: UUID
    quantity_expected: Decimal
    unit: str = "kg"
    estimated_cost: Decimal | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ReceivedQuantity:
    """Actual quantity received (or dispatched) for one item of a document."""
    item_id: UUID
    quantity: Decimal


@dataclass(frozen=True)
class RequisitionPatch:
    """Fixed set of requisition assignments.  ``None`` leaves a field unchanged."""
    source_location_id: UUID | None = None
    delivery_location_id: UUID | None = None
    priority: RequisitionPriority | None = None
    expected_delivery_date: date | None = None
    notes: str | None = None
    items: tuple[RequisitionItemInput, ...] | None = None

    @property
    def is_empty(self) -> bool:
        return all(
            getattr(self, name) is None
            for name in (
                "source_location_id",
                "delivery_location_id",
                "priority",
                "expected_delivery_date",
                "notes",
                "items",
            )
        )


@dataclass(frozen=True)
class PurchaseOrderItemInput:
    item_id: UUID
    quantity: Decimal
    unit_price: Decimal
    unit: str = "kg"
    delivery_location_id: UUID | None = None
    requisition_item_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class DeliveryLocationInput:
    location_id: UUID
    delivery_address: str | None = None
    expected_delivery_date: date | None = None


@dataclass(frozen=True)
class GRNItemInput:
    item_id: UUID
    quantity_received: Decimal
    unit_cost: Decimal
    quantity_expected: Decimal | None = None
    expected_unit_cost: Decimal | None = None
    unit: str = "kg"
    batch_number: str | None = None
    expiry_date: date | None = None
    perishability: Perishability = Perishability.NON_PERISHABLE
    reject_reason: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PurchaseEntryItemInput:
    item_id: UUID
    quantity: Decimal
    price: Decimal
    quantity_expected: Decimal | None = None
    quantity_received: Decimal | None = None
    unit: str = "kg"
    batch_number: str | None = None
    expiry_date: date | None = None
    storage_location: str | None = None
    quality_check: str = "pending"
    notes: str | None = None


@dataclass(frozen=True)
class PaymentInput:
    payment_status: PaymentStatus = PaymentStatus.PENDING
    amount_paid: Decimal = Decimal("0")
    payment_method: str | None = None
    payment_reference: str | None = None


@dataclass(frozen=True)
class TransferItemInput:
    item_id: UUID
    quantity: Decimal
    unit: str = "kg"
    cost_per_unit: Decimal | None = None
    batch_number: str | None = None
    expiry_date: date | None = None
    notes: str | None = None


# -----------------------------------------------------------------------------
# Documents
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class RequisitionLine:
    id: UUID
    item_id: UUID
    quantity_expected: Decimal
    quantity_received: Decimal | None
    unit: str
    estimated_cost: Decimal | None = None
    notes: str | None = None


@dataclass(frozen=True)
class Requisition:
    id: UUID
    requisition_number: str
    source_location_id: UUID
    delivery_location_id: UUID
    requisition_type: str
    priority: RequisitionPriority
    status: RequisitionStatus
    lines: tuple[RequisitionLine, ...] = ()
    expected_delivery_date: date | None = None
    notes: str | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    received_at: datetime | None = None


@dataclass(frozen=True)
class PurchaseOrderLine:
    id: UUID
    item_id: UUID
    quantity: Decimal
    unit: str
    unit_price: Decimal
    total_price: Decimal
    delivery_location_id: UUID | None = None
    requisition_item_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class PurchaseOrderDeliveryLocation:
    id: UUID
    location_id: UUID
    delivery_address: str | None = None
    expected_delivery_date: date | None = None


@dataclass(frozen=True)
class PurchaseOrder:
    id: UUID
    po_number: str
    supplier_id: UUID | None
    order_type: PurchaseOrderType
    delivery_type: DeliveryType
    status: PurchaseOrderStatus
    total_amount: Decimal
    lines: tuple[PurchaseOrderLine, ...] = ()
    delivery_locations: tuple[PurchaseOrderDeliveryLocation, ...] = ()
    requisition_id: UUID | None = None
    central_delivery_location_id: UUID | None = None
    expected_delivery_date: date | None = None
    notes: str | None = None


@dataclass(frozen=True)
class GRNLine:
    id: UUID
    item_id: UUID
    quantity_expected: Decimal | None
    quantity_received: Decimal
    unit: str
    unit_cost: Decimal
    total_cost: Decimal
    expected_unit_cost: Decimal | None = None
    expected_total_cost: Decimal | None = None
    batch_number: str | None = None
    expiry_date: date | None = None
    perishability: Perishability = Perishability.NON_PERISHABLE
    source: GRNItemSource = GRNItemSource.GRN
    reject_reason: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class GoodsReceivedNote:
    id: UUID
    grn_number: str
    batch_id: str
    destination_location_id: UUID
    status: GRNStatus
    is_direct_grn: bool
    subtotal_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    lines: tuple[GRNLine, ...] = ()
    purchase_order_id: UUID | None = None
    supplier_id: UUID | None = None
    received_at: datetime | None = None
    receiver_id: UUID | None = None
    invoice_number: str | None = None
    delivery_notes: str | None = None


@dataclass(frozen=True)
class PurchaseEntryLine:
    id: UUID
    item_id: UUID
    quantity: Decimal
    price: Decimal
    total: Decimal
    unit: str
    quantity_expected: Decimal | None = None
    quantity_received: Decimal | None = None
    batch_number: str | None = None
    expiry_date: date | None = None
    storage_location: str | None = None
    quality_check: str = "pending"
    notes: str | None = None


@dataclass(frozen=True)
class PurchaseEntry:
    id: UUID
    pe_number: str
    payment_status: PaymentStatus
    total_amount: Decimal
    amount_paid: Decimal
    is_direct_pe: bool
    lines: tuple[PurchaseEntryLine, ...] = ()
    purchase_order_id: UUID | None = None
    grn_id: UUID | None = None
    supplier_id: UUID | None = None
    invoice_number: str | None = None
    invoice_date: date | None = None
    payment_method: str | None = None
    payment_reference: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class StockTransferLine:
    id: UUID
    item_id: UUID
    quantity_requested: Decimal
    quantity_dispatched: Decimal
    quantity_received: Decimal
    unit: str
    cost_per_unit: Decimal | None = None
    batch_number: str | None = None
    expiry_date: date | None = None
    notes: str | None = None


@dataclass(frozen=True)
class StockTransfer:
    id: UUID
    transfer_number: str
    source_location_id: UUID
    destination_location_id: UUID
    transfer_type: TransferType
    status: TransferStatus
    lines: tuple[StockTransferLine, ...] = ()
    requisition_id: UUID | None = None
    purchase_order_id: UUID | None = None
    grn_id: UUID | None = None
    purchase_entry_id: UUID | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    dispatched_at: datetime | None = None
    received_at: datetime | None = None
    notes: str | None = None
