"""
Purchase Entry Service (``inventory_modules.supply_chain.purchase_entries``).

Responsibility
--------------
The payment / accounting record of a receipt.  Creating an entry closes
out its predecessors: a referenced GRN becomes ``received`` and the
purchase order behind it becomes ``completed``.  A ``rejected`` GRN never
posted stock and cannot back an entry.  Once a purchase order is
``completed`` further entries must come through one of its GRNs.

Payment status is tracked on the entry alone; changing it never touches
the purchase order or GRN.  Purchase entries have no stock effect (the
GRN already posted the receipt).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.dtos import coerce_enum
from inventory_kernel.exceptions import InvalidTransitionError
from inventory_kernel.logging_config import get_logger
from inventory_modules.supply_chain.base import (
    ZERO,
    SupplyChainService,
    require_lines,
    require_non_negative,
    require_positive,
)
from inventory_modules.supply_chain.models import (
    GRNStatus,
    PaymentInput,
    PaymentStatus,
    PurchaseEntry,
    PurchaseEntryItemInput,
)
from inventory_modules.supply_chain.orm import (
    GRNModel,
    PurchaseEntryItemModel,
    PurchaseEntryModel,
    PurchaseOrderModel,
)
from inventory_modules.supply_chain.purchase_orders import advance_purchase_order
from inventory_modules.supply_chain.workflows import HAS_RECEIPT

logger = get_logger("modules.supply_chain.purchase_entries")

DOCUMENT_PREFIX = "PE"


class PurchaseEntryService(SupplyChainService):
    """Purchase entry creation and payment tracking."""

    entity_type = "PurchaseEntry"

    def get(self, pe_id: UUID) -> PurchaseEntry:
        return self._load(PurchaseEntryModel, pe_id).to_dto()

    def list(
        self,
        payment_status: PaymentStatus | None = None,
        purchase_order_id: UUID | None = None,
    ) -> list[PurchaseEntry]:
        stmt = select(PurchaseEntryModel).order_by(PurchaseEntryModel.created_at.desc())
        if payment_status is not None:
            stmt = stmt.where(
                PurchaseEntryModel.payment_status == coerce_enum(PaymentStatus, payment_status, "payment_status").value
            )
        if purchase_order_id is not None:
            stmt = stmt.where(PurchaseEntryModel.purchase_order_id == purchase_order_id)
        return [pe.to_dto() for pe in self._session.execute(stmt).scalars().all()]

    def create(
        self,
        items: Sequence[PurchaseEntryItemInput],
        *,
        actor_id: UUID,
        purchase_order_id: UUID | None = None,
        grn_id: UUID | None = None,
        supplier_id: UUID | None = None,
        invoice_number: str | None = None,
        invoice_date: date | None = None,
        payment: PaymentInput = PaymentInput(),
        notes: str | None = None,
    ) -> PurchaseEntry:
        """
        Record a purchase entry from an explicit payload.

        A given purchase order becomes ``completed``; a given GRN becomes
        ``received``.
        """
        require_lines(items)
        with self._unit_of_work("create_purchase_entry", actor_id):
            po = grn = None
            if grn_id is not None:
                grn = self._load(GRNModel, grn_id, lock=True)
            if purchase_order_id is not None:
                po = self._load(PurchaseOrderModel, purchase_order_id, lock=True)

            self._require_items(line.item_id for line in items)
            if grn is not None:
                self._mark_grn_received(grn, actor_id)
            if po is not None:
                advance_purchase_order(
                    po, "complete", actor_id, satisfied=_receipt_guards(po, grn),
                )

            pe = self._record(
                items=items,
                actor_id=actor_id,
                purchase_order_id=purchase_order_id,
                grn_id=grn_id,
                supplier_id=supplier_id or _supplier_of(po, grn),
                invoice_number=invoice_number,
                invoice_date=invoice_date,
                payment=payment,
                is_direct=grn_id is None,
                notes=notes,
            )

        self._log_created(pe)
        return pe.to_dto()

    def create_from_grn(
        self,
        grn_id: UUID,
        *,
        actor_id: UUID,
        invoice_number: str | None = None,
        invoice_date: date | None = None,
        payment: PaymentInput = PaymentInput(),
        notes: str | None = None,
    ) -> PurchaseEntry:
        """
        Derive an entry from a GRN: one line per GRN line at its unit cost.

        The GRN becomes ``received`` and its purchase order (if any)
        ``completed``.  A ``rejected`` GRN raises InvalidTransitionError.
        """
        with self._unit_of_work("create_pe_from_grn", actor_id, grn_id):
            grn = self._load(GRNModel, grn_id, lock=True)
            po = None
            if grn.purchase_order_id is not None:
                po = self._load(PurchaseOrderModel, grn.purchase_order_id, lock=True)
            self._mark_grn_received(grn, actor_id)

            items = [
                PurchaseEntryItemInput(
                    item_id=item.item_id,
                    quantity=item.quantity_received,
                    price=item.unit_cost,
                    quantity_expected=item.quantity_expected,
                    quantity_received=item.quantity_received,
                    unit=item.unit,
                    batch_number=item.batch_number,
                    expiry_date=item.expiry_date,
                    notes=item.notes,
                )
                for item in grn.items
                if item.quantity_received > 0
            ]
            require_lines(items)
            if po is not None:
                advance_purchase_order(
                    po, "complete", actor_id, satisfied=_receipt_guards(po, grn),
                )

            pe = self._record(
                items=items,
                actor_id=actor_id,
                purchase_order_id=grn.purchase_order_id,
                grn_id=grn.id,
                supplier_id=_supplier_of(po, grn),
                invoice_number=invoice_number or grn.invoice_number,
                invoice_date=invoice_date,
                payment=payment,
                is_direct=False,
                notes=notes or f"Purchase entry for GRN {grn.grn_number}",
            )

        self._log_created(pe)
        return pe.to_dto()

    def create_from_po(
        self,
        po_id: UUID,
        *,
        actor_id: UUID,
        invoice_number: str | None = None,
        invoice_date: date | None = None,
        payment: PaymentInput = PaymentInput(),
        notes: str | None = None,
    ) -> PurchaseEntry:
        """Direct entry against a purchase order (no GRN); the PO becomes ``completed``."""
        with self._unit_of_work("create_pe_from_po", actor_id, po_id):
            po = self._load(PurchaseOrderModel, po_id, lock=True)
            items = [
                PurchaseEntryItemInput(
                    item_id=item.item_id,
                    quantity=item.quantity,
                    price=item.unit_price,
                    quantity_expected=item.quantity,
                    unit=item.unit,
                )
                for item in po.items
            ]
            require_lines(items)
            advance_purchase_order(po, "complete", actor_id)

            pe = self._record(
                items=items,
                actor_id=actor_id,
                purchase_order_id=po.id,
                grn_id=None,
                supplier_id=po.supplier_id,
                invoice_number=invoice_number,
                invoice_date=invoice_date,
                payment=payment,
                is_direct=True,
                notes=notes or f"Purchase entry for PO {po.po_number}",
            )

        self._log_created(pe)
        return pe.to_dto()

    def update_payment_status(
        self,
        pe_id: UUID,
        payment_status: PaymentStatus | str,
        *,
        actor_id: UUID,
        amount_paid: Decimal | None = None,
        payment_method: str | None = None,
        payment_reference: str | None = None,
    ) -> PurchaseEntry:
        status = coerce_enum(PaymentStatus, payment_status, "payment_status")
        if amount_paid is not None:
            amount_paid = require_non_negative(amount_paid, None, "amount_paid")

        with self._unit_of_work("update_payment_status", actor_id, pe_id):
            pe = self._load(PurchaseEntryModel, pe_id, lock=True)
            previous = pe.payment_status
            pe.payment_status = status.value
            if amount_paid is not None:
                pe.amount_paid = amount_paid
            if payment_method is not None:
                pe.payment_method = payment_method
            if payment_reference is not None:
                pe.payment_reference = payment_reference
            pe.updated_by_id = actor_id
            self._session.flush()

        logger.info(
            "purchase_entry_payment_updated",
            extra={
                "pe_id": str(pe_id),
                "from_status": previous,
                "to_status": status.value,
                "amount_paid": str(pe.amount_paid),
            },
        )
        return pe.to_dto()

    # =========================================================================
    # Internal
    # =========================================================================

    def _mark_grn_received(self, grn: GRNModel, actor_id: UUID) -> None:
        if grn.status == GRNStatus.REJECTED.value:
            raise InvalidTransitionError(
                entity_type="GRN",
                entity_id=grn.id,
                from_state=grn.status,
                action="create_purchase_entry",
            )
        if grn.status != GRNStatus.RECEIVED.value:
            logger.info(
                "grn_status_changed",
                extra={
                    "grn_id": str(grn.id),
                    "from_status": grn.status,
                    "to_status": GRNStatus.RECEIVED.value,
                },
            )
        grn.status = GRNStatus.RECEIVED.value
        grn.updated_by_id = actor_id

    def _record(
        self,
        *,
        items: Sequence[PurchaseEntryItemInput],
        actor_id: UUID,
        purchase_order_id: UUID | None,
        grn_id: UUID | None,
        supplier_id: UUID | None,
        invoice_number: str | None,
        invoice_date: date | None,
        payment: PaymentInput,
        is_direct: bool,
        notes: str | None,
    ) -> PurchaseEntryModel:
        pe_items = []
        for line in items:
            quantity = require_positive(line.quantity, line.item_id)
            price = require_non_negative(line.price, line.item_id, "price")
            pe_items.append(
                PurchaseEntryItemModel(
                    item_id=line.item_id,
                    quantity=quantity,
                    quantity_expected=line.quantity_expected,
                    quantity_received=line.quantity_received,
                    unit=line.unit,
                    price=price,
                    total=quantity * price,
                    batch_number=line.batch_number,
                    expiry_date=line.expiry_date,
                    storage_location=line.storage_location,
                    quality_check=line.quality_check,
                    notes=line.notes,
                    created_by_id=actor_id,
                )
            )

        pe = PurchaseEntryModel(
            pe_number=self._next_number(DOCUMENT_PREFIX),
            purchase_order_id=purchase_order_id,
            grn_id=grn_id,
            supplier_id=supplier_id,
            invoice_number=invoice_number,
            invoice_date=invoice_date,
            total_amount=sum((i.total for i in pe_items), ZERO),
            amount_paid=require_non_negative(payment.amount_paid, None, "amount_paid"),
            payment_status=coerce_enum(PaymentStatus, payment.payment_status, "payment_status").value,
            payment_method=payment.payment_method,
            payment_reference=payment.payment_reference,
            is_direct_pe=is_direct,
            notes=notes,
            created_by_id=actor_id,
        )
        pe.items = pe_items
        self._session.add(pe)
        self._session.flush()
        return pe

    @staticmethod
    def _log_created(pe: PurchaseEntryModel) -> None:
        logger.info(
            "purchase_entry_created",
            extra={
                "pe_id": str(pe.id),
                "pe_number": pe.pe_number,
                "po_id": str(pe.purchase_order_id) if pe.purchase_order_id else None,
                "grn_id": str(pe.grn_id) if pe.grn_id else None,
                "payment_status": pe.payment_status,
                "total_amount": str(pe.total_amount),
            },
        )


def _receipt_guards(po: PurchaseOrderModel, grn: GRNModel | None) -> frozenset[str]:
    if grn is not None and grn.purchase_order_id == po.id:
        return frozenset({HAS_RECEIPT.name})
    return frozenset()


def _supplier_of(po: PurchaseOrderModel | None, grn: GRNModel | None) -> UUID | None:
    if grn is not None and grn.supplier_id is not None:
        return grn.supplier_id
    return po.supplier_id if po is not None else None
