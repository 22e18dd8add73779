"""
Goods Received Note Service (``inventory_modules.supply_chain.grns``).

Responsibility
--------------
Records physical deliveries.  A GRN against a purchase order moves the
order to ``partially_received``; a GRN without one is a direct GRN.

Stock effect
------------
A GRN whose status is ``received`` or ``partial`` adds every line's
received quantity to the destination location, ledgered as a
``purchase`` movement referencing the GRN.  A ``rejected`` GRN posts
nothing.  Lines are posted in sorted item order.

Totals
------
``subtotal_amount`` is the sum of line ``total_cost``
(``quantity_received * unit_cost``); ``total_amount`` is the subtotal
less ``discount_amount``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.dtos import (
    MovementType,
    ReferenceType,
    StockOperation,
    coerce_enum,
)
from inventory_kernel.exceptions import ValidationFailureError
from inventory_kernel.logging_config import get_logger
from inventory_modules.supply_chain.base import (
    ZERO,
    SupplyChainService,
    require_lines,
    require_non_negative,
)
from inventory_modules.supply_chain.models import (
    GoodsReceivedNote,
    GRNItemInput,
    GRNItemSource,
    GRNStatus,
    Perishability,
)
from inventory_modules.supply_chain.orm import GRNItemModel, GRNModel, PurchaseOrderModel
from inventory_modules.supply_chain.purchase_orders import advance_purchase_order

logger = get_logger("modules.supply_chain.grns")

DOCUMENT_PREFIX = "GRN"
BATCH_PREFIX = "BATCH"

STOCKED_STATUSES = frozenset({GRNStatus.RECEIVED, GRNStatus.PARTIAL})


class GRNService(SupplyChainService):
    """Goods receipt recording and stock posting."""

    entity_type = "GRN"

    def get(self, grn_id: UUID) -> GoodsReceivedNote:
        return self._load(GRNModel, grn_id).to_dto()

    def list(
        self,
        purchase_order_id: UUID | None = None,
        status: GRNStatus | None = None,
    ) -> list[GoodsReceivedNote]:
        stmt = select(GRNModel).order_by(GRNModel.created_at.desc())
        if purchase_order_id is not None:
            stmt = stmt.where(GRNModel.purchase_order_id == purchase_order_id)
        if status is not None:
            stmt = stmt.where(GRNModel.status == coerce_enum(GRNStatus, status, "status").value)
        return [grn.to_dto() for grn in self._session.execute(stmt).scalars().all()]

    def create(
        self,
        destination_location_id: UUID,
        items: Sequence[GRNItemInput],
        *,
        actor_id: UUID,
        purchase_order_id: UUID | None = None,
        supplier_id: UUID | None = None,
        status: GRNStatus = GRNStatus.RECEIVED,
        discount_amount: Decimal = ZERO,
        invoice_number: str | None = None,
        delivery_notes: str | None = None,
        receiver_id: UUID | None = None,
        received_at: datetime | None = None,
    ) -> GoodsReceivedNote:
        """
        Record a delivery.

        With ``purchase_order_id`` the order is locked and moved to
        ``partially_received`` (a cancelled or completed order rejects the
        receipt); without it the GRN is direct.
        """
        require_lines(items)
        with self._unit_of_work("create_grn", actor_id, purchase_order_id):
            po = None
            if purchase_order_id is not None:
                po = self._load(PurchaseOrderModel, purchase_order_id, lock=True)
                advance_purchase_order(po, "receive", actor_id)
                supplier_id = supplier_id or po.supplier_id

            grn = self._record(
                destination_location_id=destination_location_id,
                items=items,
                actor_id=actor_id,
                po=po,
                supplier_id=supplier_id,
                status=coerce_enum(GRNStatus, status, "status"),
                discount_amount=discount_amount,
                invoice_number=invoice_number,
                delivery_notes=delivery_notes,
                receiver_id=receiver_id,
                received_at=received_at,
            )

        self._log_created(grn)
        return grn.to_dto()

    def create_from_po(
        self,
        po_id: UUID,
        *,
        actor_id: UUID,
        destination_location_id: UUID | None = None,
        received: Sequence[GRNItemInput] | None = None,
        status: GRNStatus = GRNStatus.RECEIVED,
        discount_amount: Decimal = ZERO,
        invoice_number: str | None = None,
        delivery_notes: str | None = None,
        receiver_id: UUID | None = None,
    ) -> GoodsReceivedNote:
        """
        Receive against a purchase order.

        Expected quantities and costs come from the PO lines.  ``received``
        overrides the received quantity / cost per item; PO lines without an
        override are received in full at the ordered price.  The destination
        defaults to the PO's central delivery location, then its first
        delivery location.
        """
        overrides = {line.item_id: line for line in received or ()}

        with self._unit_of_work("create_grn_from_po", actor_id, po_id):
            po = self._load(PurchaseOrderModel, po_id, lock=True)
            if not po.items:
                raise ValidationFailureError(
                    f"Purchase order {po.po_number} has no items", field="items",
                )
            unknown = sorted(overrides.keys() - {i.item_id for i in po.items}, key=str)
            if unknown:
                raise ValidationFailureError(
                    f"Item {unknown[0]} is not on purchase order {po.po_number}",
                    field="received",
                )

            destination = destination_location_id or po.central_delivery_location_id
            if destination is None and po.delivery_locations:
                destination = po.delivery_locations[0].location_id
            if destination is None:
                raise ValidationFailureError(
                    f"Purchase order {po.po_number} has no delivery location",
                    field="destination_location_id",
                )

            lines = []
            for po_item in po.items:
                override = overrides.get(po_item.item_id)
                lines.append(
                    GRNItemInput(
                        item_id=po_item.item_id,
                        quantity_received=(
                            override.quantity_received if override else po_item.quantity
                        ),
                        unit_cost=override.unit_cost if override else po_item.unit_price,
                        quantity_expected=po_item.quantity,
                        expected_unit_cost=po_item.unit_price,
                        unit=po_item.unit,
                        batch_number=override.batch_number if override else None,
                        expiry_date=override.expiry_date if override else None,
                        perishability=(
                            override.perishability if override
                            else Perishability.NON_PERISHABLE
                        ),
                        reject_reason=override.reject_reason if override else None,
                        notes=override.notes if override else None,
                    )
                )

            advance_purchase_order(po, "receive", actor_id)
            grn = self._record(
                destination_location_id=destination,
                items=lines,
                actor_id=actor_id,
                po=po,
                supplier_id=po.supplier_id,
                status=coerce_enum(GRNStatus, status, "status"),
                discount_amount=discount_amount,
                invoice_number=invoice_number,
                delivery_notes=delivery_notes,
                receiver_id=receiver_id,
                received_at=None,
            )

        self._log_created(grn)
        return grn.to_dto()

    # =========================================================================
    # Internal
    # =========================================================================

    def _record(
        self,
        *,
        destination_location_id: UUID,
        items: Sequence[GRNItemInput],
        actor_id: UUID,
        po: PurchaseOrderModel | None,
        supplier_id: UUID | None,
        status: GRNStatus,
        discount_amount: Decimal,
        invoice_number: str | None,
        delivery_notes: str | None,
        receiver_id: UUID | None,
        received_at: datetime | None,
    ) -> GRNModel:
        self._require_items(line.item_id for line in items)
        discount = require_non_negative(discount_amount, None, "discount_amount")
        source = GRNItemSource.GRN if po is not None else GRNItemSource.DIRECT

        grn_items = []
        for line in items:
            received_qty = require_non_negative(
                line.quantity_received, line.item_id, "quantity_received",
            )
            unit_cost = require_non_negative(line.unit_cost, line.item_id, "unit_cost")
            expected_total = None
            if line.quantity_expected is not None and line.expected_unit_cost is not None:
                expected_total = Decimal(line.quantity_expected) * Decimal(line.expected_unit_cost)
            grn_items.append(
                GRNItemModel(
                    item_id=line.item_id,
                    quantity_expected=line.quantity_expected,
                    quantity_received=received_qty,
                    unit=line.unit,
                    unit_cost=unit_cost,
                    total_cost=received_qty * unit_cost,
                    expected_unit_cost=line.expected_unit_cost,
                    expected_total_cost=expected_total,
                    batch_number=line.batch_number,
                    expiry_date=line.expiry_date,
                    item_type=coerce_enum(Perishability, line.perishability, "perishability").value,
                    grn_type=source.value,
                    reject_reason=line.reject_reason,
                    notes=line.notes,
                    created_by_id=actor_id,
                )
            )

        subtotal = sum((i.total_cost for i in grn_items), ZERO)
        grn = GRNModel(
            grn_number=self._next_number(DOCUMENT_PREFIX),
            batch_id=self._next_number(BATCH_PREFIX),
            purchase_order_id=po.id if po is not None else None,
            supplier_id=supplier_id,
            destination_location_id=destination_location_id,
            status=status.value,
            is_direct_grn=po is None,
            received_at=received_at or self._clock.now(),
            receiver_id=receiver_id or actor_id,
            invoice_number=invoice_number,
            delivery_notes=delivery_notes,
            subtotal_amount=subtotal,
            discount_amount=discount,
            total_amount=subtotal - discount,
            created_by_id=actor_id,
        )
        grn.items = grn_items
        self._session.add(grn)
        self._session.flush()

        if status in STOCKED_STATUSES:
            self._post_stock(grn, actor_id)
        return grn

    def _post_stock(self, grn: GRNModel, actor_id: UUID) -> None:
        posted = 0
        for item in sorted(grn.items, key=lambda i: str(i.item_id)):
            if item.quantity_received <= 0:
                continue
            self._stock.adjust(
                grn.destination_location_id,
                item.item_id,
                item.quantity_received,
                StockOperation.ADD,
                actor_id=actor_id,
                movement_type=MovementType.PURCHASE,
                reference_type=ReferenceType.GRN,
                reference_id=grn.id,
                unit_cost=item.unit_cost,
                notes=f"GRN {grn.grn_number}",
                create_missing=True,
            )
            posted += 1
        logger.info(
            "grn_stock_posted",
            extra={
                "grn_id": str(grn.id),
                "location_id": str(grn.destination_location_id),
                "posted_line_count": posted,
            },
        )

    @staticmethod
    def _log_created(grn: GRNModel) -> None:
        logger.info(
            "grn_created",
            extra={
                "grn_id": str(grn.id),
                "grn_number": grn.grn_number,
                "batch_id": grn.batch_id,
                "status": grn.status,
                "is_direct": grn.is_direct_grn,
                "total_amount": str(grn.total_amount),
            },
        )
