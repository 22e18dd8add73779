"""
Purchase Order Service (``inventory_modules.supply_chain.purchase_orders``).

Responsibility
--------------
Supplier purchase orders: direct, derived from one requisition, or
consolidated from several requisitions.  Status changes go through
``PURCHASE_ORDER_WORKFLOW``; GRN and purchase entry services advance the
order with ``advance_purchase_order``.

Invariants
----------
- ``total_amount`` equals the sum of line ``total_price``.
- Deriving a PO never changes the requisitions it came from.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Mapping, Sequence
from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.dtos import coerce_enum
from inventory_kernel.exceptions import InvalidTransitionError, ValidationFailureError
from inventory_kernel.logging_config import get_logger
from inventory_modules.supply_chain.base import (
    ZERO,
    SupplyChainService,
    require_lines,
    require_non_negative,
    require_positive,
)
from inventory_modules.supply_chain.models import (
    DeliveryLocationInput,
    DeliveryType,
    PurchaseOrder,
    PurchaseOrderItemInput,
    PurchaseOrderStatus,
    PurchaseOrderType,
)
from inventory_modules.supply_chain.orm import (
    PODeliveryLocationModel,
    PurchaseOrderItemModel,
    PurchaseOrderModel,
    RequisitionModel,
)
from inventory_modules.supply_chain.workflows import PURCHASE_ORDER_WORKFLOW

logger = get_logger("modules.supply_chain.purchase_orders")

DOCUMENT_PREFIX = "PO"


def advance_purchase_order(
    po: PurchaseOrderModel,
    action: str,
    actor_id: UUID,
    satisfied: frozenset[str] = frozenset(),
) -> str:
    """Apply a workflow action to a loaded PO row; returns the previous status."""
    transition = PURCHASE_ORDER_WORKFLOW.require(
        po.status, action, "PurchaseOrder", po.id, satisfied=satisfied,
    )
    previous = po.status
    po.status = transition.to_state
    po.updated_by_id = actor_id
    if previous != po.status:
        logger.info(
            "purchase_order_status_changed",
            extra={
                "po_id": str(po.id),
                "po_number": po.po_number,
                "from_status": previous,
                "to_status": po.status,
                "action": action,
            },
        )
    return previous


class PurchaseOrderService(SupplyChainService):
    """Purchase order creation and status management."""

    entity_type = "PurchaseOrder"

    def get(self, po_id: UUID) -> PurchaseOrder:
        return self._load(PurchaseOrderModel, po_id).to_dto()

    def list(
        self,
        status: PurchaseOrderStatus | None = None,
        supplier_id: UUID | None = None,
    ) -> list[PurchaseOrder]:
        stmt = select(PurchaseOrderModel).order_by(PurchaseOrderModel.created_at.desc())
        if status is not None:
            stmt = stmt.where(PurchaseOrderModel.status == coerce_enum(PurchaseOrderStatus, status, "status").value)
        if supplier_id is not None:
            stmt = stmt.where(PurchaseOrderModel.supplier_id == supplier_id)
        return [po.to_dto() for po in self._session.execute(stmt).scalars().all()]

    # =========================================================================
    # Creation
    # =========================================================================

    def create(
        self,
        supplier_id: UUID | None,
        items: Sequence[PurchaseOrderItemInput],
        *,
        actor_id: UUID,
        delivery_type: DeliveryType = DeliveryType.SINGLE_LOCATION,
        delivery_locations: Sequence[DeliveryLocationInput] = (),
        central_delivery_location_id: UUID | None = None,
        expected_delivery_date: date | None = None,
        notes: str | None = None,
    ) -> PurchaseOrder:
        """Create a direct purchase order."""
        require_lines(items)
        with self._unit_of_work("create_purchase_order", actor_id):
            self._require_items(line.item_id for line in items)
            po = self._new_po(
                supplier_id=supplier_id,
                order_type=PurchaseOrderType.DIRECT,
                delivery_type=coerce_enum(DeliveryType, delivery_type, "delivery_type"),
                items=items,
                delivery_locations=delivery_locations,
                actor_id=actor_id,
                central_delivery_location_id=central_delivery_location_id,
                expected_delivery_date=expected_delivery_date,
                notes=notes,
            )

        self._log_created(po)
        return po.to_dto()

    def create_from_requisition(
        self,
        requisition_id: UUID,
        supplier_id: UUID | None,
        *,
        actor_id: UUID,
        unit_prices: Mapping[UUID, Decimal] | None = None,
        expected_delivery_date: date | None = None,
        notes: str | None = None,
    ) -> PurchaseOrder:
        """
        Derive a PO from one requisition.

        Each requisition line becomes a PO line for its expected quantity.
        The unit price is taken from ``unit_prices`` when given, otherwise
        from the item's catalog cost (0 when the item has none).  The
        requisition's status is left unchanged.
        """
        unit_prices = unit_prices or {}
        with self._unit_of_work("create_po_from_requisition", actor_id, requisition_id):
            requisition = self._load(RequisitionModel, requisition_id)
            if not requisition.items:
                raise ValidationFailureError(
                    f"Requisition {requisition.requisition_number} has no items",
                    field="items",
                )
            catalog = self._require_items(item.item_id for item in requisition.items)
            delivery_location_id = (
                requisition.delivery_location_id or requisition.source_location_id
            )

            lines = [
                PurchaseOrderItemInput(
                    item_id=item.item_id,
                    quantity=item.quantity_expected,
                    unit_price=unit_prices.get(
                        item.item_id, catalog[item.item_id].cost_per_unit or ZERO,
                    ),
                    unit=item.unit,
                    delivery_location_id=delivery_location_id,
                    requisition_item_ids=(item.id,),
                )
                for item in requisition.items
            ]
            po = self._new_po(
                supplier_id=supplier_id,
                order_type=PurchaseOrderType.REQUISITION_BASED,
                delivery_type=DeliveryType.SINGLE_LOCATION,
                items=lines,
                delivery_locations=(
                    DeliveryLocationInput(
                        location_id=delivery_location_id,
                        expected_delivery_date=(
                            expected_delivery_date or requisition.expected_delivery_date
                        ),
                    ),
                ),
                actor_id=actor_id,
                requisition_id=requisition.id,
                expected_delivery_date=expected_delivery_date or requisition.expected_delivery_date,
                notes=notes or f"PO for requisition {requisition.requisition_number}",
            )

        self._log_created(po)
        return po.to_dto()

    def create_consolidated(
        self,
        requisition_ids: Sequence[UUID],
        supplier_id: UUID | None,
        *,
        actor_id: UUID,
        central_delivery_location_id: UUID | None = None,
        expected_delivery_date: date | None = None,
    ) -> PurchaseOrder:
        """
        Consolidate several requisitions into one PO.

        Requisitions are grouped by their source location: every
        requisition line becomes one PO line delivered to that location,
        and each distinct location gets one delivery-location row.
        """
        if not requisition_ids:
            raise ValidationFailureError(
                "At least one requisition is required", field="requisition_ids",
            )
        if len(set(requisition_ids)) != len(requisition_ids):
            raise ValidationFailureError(
                "Requisition ids must be distinct", field="requisition_ids",
            )

        with self._unit_of_work("create_consolidated_po", actor_id):
            requisitions = [self._load(RequisitionModel, rid) for rid in requisition_ids]
            catalog = self._require_items(
                item.item_id for req in requisitions for item in req.items
            )

            by_location: OrderedDict[UUID, list[RequisitionModel]] = OrderedDict()
            for req in requisitions:
                by_location.setdefault(req.source_location_id, []).append(req)

            lines: list[PurchaseOrderItemInput] = []
            for location_id, group in by_location.items():
                for req in group:
                    for item in req.items:
                        lines.append(
                            PurchaseOrderItemInput(
                                item_id=item.item_id,
                                quantity=item.quantity_expected,
                                unit_price=catalog[item.item_id].cost_per_unit or ZERO,
                                unit=item.unit,
                                delivery_location_id=location_id,
                                requisition_item_ids=(item.id,),
                            )
                        )
            if not lines:
                raise ValidationFailureError(
                    "The requisitions have no items", field="requisition_ids",
                )

            numbers = ", ".join(req.requisition_number for req in requisitions)
            po = self._new_po(
                supplier_id=supplier_id,
                order_type=PurchaseOrderType.CONSOLIDATED,
                delivery_type=(
                    DeliveryType.MULTIPLE_LOCATIONS
                    if len(by_location) > 1
                    else DeliveryType.SINGLE_LOCATION
                ),
                items=lines,
                delivery_locations=tuple(
                    DeliveryLocationInput(
                        location_id=location_id,
                        expected_delivery_date=expected_delivery_date,
                    )
                    for location_id in by_location
                ),
                actor_id=actor_id,
                central_delivery_location_id=central_delivery_location_id,
                expected_delivery_date=expected_delivery_date,
                notes=f"Consolidated PO for requisitions: {numbers}",
            )

        self._log_created(po, requisition_count=len(requisitions))
        return po.to_dto()

    # =========================================================================
    # Status
    # =========================================================================

    def update_status(
        self,
        po_id: UUID,
        status: PurchaseOrderStatus | str,
        *,
        actor_id: UUID,
    ) -> PurchaseOrder:
        target = coerce_enum(PurchaseOrderStatus, status, "status").value
        with self._unit_of_work("update_po_status", actor_id, po_id):
            po = self._load(PurchaseOrderModel, po_id, lock=True)
            if not PURCHASE_ORDER_WORKFLOW.allows_status(po.status, target):
                raise InvalidTransitionError(
                    entity_type=self.entity_type,
                    entity_id=po_id,
                    from_state=po.status,
                    action=target,
                )
            previous = po.status
            po.status = target
            po.updated_by_id = actor_id
            self._session.flush()

        logger.info(
            "purchase_order_status_changed",
            extra={"po_id": str(po_id), "from_status": previous, "to_status": target},
        )
        return po.to_dto()

    def cancel(self, po_id: UUID, *, actor_id: UUID) -> PurchaseOrder:
        with self._unit_of_work("cancel_purchase_order", actor_id, po_id):
            po = self._load(PurchaseOrderModel, po_id, lock=True)
            advance_purchase_order(po, "cancel", actor_id)
            self._session.flush()
        return po.to_dto()

    # =========================================================================
    # Internal
    # =========================================================================

    def _new_po(
        self,
        *,
        supplier_id: UUID | None,
        order_type: PurchaseOrderType,
        delivery_type: DeliveryType,
        items: Sequence[PurchaseOrderItemInput],
        delivery_locations: Sequence[DeliveryLocationInput],
        actor_id: UUID,
        requisition_id: UUID | None = None,
        central_delivery_location_id: UUID | None = None,
        expected_delivery_date: date | None = None,
        notes: str | None = None,
    ) -> PurchaseOrderModel:
        po_items = []
        for line in items:
            quantity = require_positive(line.quantity, line.item_id)
            unit_price = require_non_negative(line.unit_price, line.item_id, "unit_price")
            po_items.append(
                PurchaseOrderItemModel(
                    item_id=line.item_id,
                    quantity=quantity,
                    unit=line.unit,
                    unit_price=unit_price,
                    total_price=quantity * unit_price,
                    delivery_location_id=line.delivery_location_id,
                    requisition_item_ids=[str(i) for i in line.requisition_item_ids],
                    created_by_id=actor_id,
                )
            )

        po = PurchaseOrderModel(
            po_number=self._next_number(DOCUMENT_PREFIX),
            supplier_id=supplier_id,
            requisition_id=requisition_id,
            order_type=order_type.value,
            delivery_type=delivery_type.value,
            central_delivery_location_id=central_delivery_location_id,
            status=PURCHASE_ORDER_WORKFLOW.initial_state,
            total_amount=sum((i.total_price for i in po_items), ZERO),
            expected_delivery_date=expected_delivery_date,
            notes=notes,
            created_by_id=actor_id,
        )
        po.items = po_items
        po.delivery_locations = [
            PODeliveryLocationModel(
                location_id=loc.location_id,
                delivery_address=loc.delivery_address,
                expected_delivery_date=loc.expected_delivery_date,
                created_by_id=actor_id,
            )
            for loc in delivery_locations
        ]
        self._session.add(po)
        self._session.flush()
        return po

    @staticmethod
    def _log_created(po: PurchaseOrderModel, **extra) -> None:
        logger.info(
            "purchase_order_created",
            extra={
                "po_id": str(po.id),
                "po_number": po.po_number,
                "order_type": po.order_type,
                "line_count": len(po.items),
                "total_amount": str(po.total_amount),
                **extra,
            },
        )
