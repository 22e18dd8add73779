"""
Stock Transfer Service (``inventory_modules.supply_chain.stock_transfers``).

Responsibility
--------------
Moves stock between two locations through a fixed sequence of steps:

    pending -> approved -> dispatched -> (in_transit) -> received
    pending | approved -> cancelled

Transfers may be derived from a GRN, a purchase entry, a requisition or a
purchase order; derivation never changes the originating document.

Stock effect
------------
- ``dispatch`` locks the source rows, refuses the whole step if any
  dispatched quantity exceeds available stock, then subtracts each
  dispatched quantity (``transfer_out``).
- ``receive`` adds each received quantity at the destination
  (``transfer_in``); no line may receive more than was dispatched.
Both reference the transfer and lock rows in sorted item order.

Failure Modes
-------------
- ``InvalidTransitionError`` for any step taken out of order.
- ``StockShortageError`` when the source cannot cover a dispatch; nothing
  is written.
- ``ValidationFailureError`` for identical source and destination, a
  quantity override naming an item that is not on the transfer, or a
  received quantity above the dispatched one.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.dtos import (
    MovementType,
    ReferenceType,
    StockOperation,
    StockRequest,
    coerce_enum,
)
from inventory_kernel.exceptions import StockShortageError, ValidationFailureError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.location_stock_store import aggregate_requests
from inventory_modules.supply_chain.base import (
    SupplyChainService,
    require_lines,
    require_non_negative,
    require_positive,
)
from inventory_modules.supply_chain.models import (
    ReceivedQuantity,
    StockTransfer,
    TransferItemInput,
    TransferStatus,
    TransferType,
)
from inventory_modules.supply_chain.orm import (
    GRNModel,
    PurchaseEntryModel,
    PurchaseOrderModel,
    RequisitionModel,
    StockTransferItemModel,
    StockTransferModel,
)
from inventory_modules.supply_chain.workflows import (
    SOURCE_STOCK_POSTED,
    STOCK_TRANSFER_WORKFLOW,
)

logger = get_logger("modules.supply_chain.stock_transfers")

DOCUMENT_PREFIX = "ST"


class StockTransferService(SupplyChainService):
    """Inter-location transfers and their stock movements."""

    entity_type = "StockTransfer"

    def get(self, transfer_id: UUID) -> StockTransfer:
        return self._load(StockTransferModel, transfer_id).to_dto()

    def list(
        self,
        status: TransferStatus | None = None,
        location_id: UUID | None = None,
    ) -> list[StockTransfer]:
        """List transfers, optionally those touching ``location_id`` on either side."""
        stmt = select(StockTransferModel).order_by(StockTransferModel.created_at.desc())
        if status is not None:
            stmt = stmt.where(StockTransferModel.status == coerce_enum(TransferStatus, status, "status").value)
        if location_id is not None:
            stmt = stmt.where(
                (StockTransferModel.source_location_id == location_id)
                | (StockTransferModel.destination_location_id == location_id)
            )
        return [t.to_dto() for t in self._session.execute(stmt).scalars().all()]

    # =========================================================================
    # Creation
    # =========================================================================

    def create(
        self,
        source_location_id: UUID,
        destination_location_id: UUID,
        items: Sequence[TransferItemInput],
        *,
        actor_id: UUID,
        transfer_type: TransferType = TransferType.MANUAL,
        notes: str | None = None,
    ) -> StockTransfer:
        with self._unit_of_work("create_stock_transfer", actor_id):
            transfer = self._new_transfer(
                source_location_id=source_location_id,
                destination_location_id=destination_location_id,
                items=items,
                actor_id=actor_id,
                transfer_type=coerce_enum(TransferType, transfer_type, "transfer_type"),
                notes=notes,
            )
        self._log_created(transfer)
        return transfer.to_dto()

    def create_from_grn(
        self,
        grn_id: UUID,
        destination_location_id: UUID,
        *,
        actor_id: UUID,
        source_location_id: UUID | None = None,
        items: Sequence[TransferItemInput] | None = None,
        notes: str | None = None,
    ) -> StockTransfer:
        """Forward received goods; the source defaults to the GRN's location."""
        with self._unit_of_work("create_transfer_from_grn", actor_id, grn_id):
            grn = self._load(GRNModel, grn_id)
            if items is None:
                items = [
                    TransferItemInput(
                        item_id=item.item_id,
                        quantity=item.quantity_received,
                        unit=item.unit,
                        cost_per_unit=item.unit_cost,
                        batch_number=item.batch_number,
                        expiry_date=item.expiry_date,
                    )
                    for item in grn.items
                    if item.quantity_received > 0
                ]
            transfer = self._new_transfer(
                source_location_id=source_location_id or grn.destination_location_id,
                destination_location_id=destination_location_id,
                items=items,
                actor_id=actor_id,
                transfer_type=TransferType.MANUAL,
                notes=notes or f"Stock transfer from GRN {grn.grn_number}",
                grn_id=grn.id,
                purchase_order_id=grn.purchase_order_id,
            )
        self._log_created(transfer)
        return transfer.to_dto()

    def create_from_purchase_entry(
        self,
        pe_id: UUID,
        source_location_id: UUID,
        destination_location_id: UUID,
        *,
        actor_id: UUID,
        items: Sequence[TransferItemInput] | None = None,
        notes: str | None = None,
    ) -> StockTransfer:
        with self._unit_of_work("create_transfer_from_purchase_entry", actor_id, pe_id):
            pe = self._load(PurchaseEntryModel, pe_id)
            if items is None:
                items = [
                    TransferItemInput(
                        item_id=item.item_id,
                        quantity=item.quantity,
                        unit=item.unit,
                        cost_per_unit=item.price,
                        batch_number=item.batch_number,
                        expiry_date=item.expiry_date,
                    )
                    for item in pe.items
                ]
            transfer = self._new_transfer(
                source_location_id=source_location_id,
                destination_location_id=destination_location_id,
                items=items,
                actor_id=actor_id,
                transfer_type=TransferType.MANUAL,
                notes=notes or f"Stock transfer from Purchase Entry {pe.pe_number}",
                purchase_entry_id=pe.id,
                grn_id=pe.grn_id,
                purchase_order_id=pe.purchase_order_id,
            )
        self._log_created(transfer)
        return transfer.to_dto()

    def create_from_requisition(
        self,
        requisition_id: UUID,
        *,
        actor_id: UUID,
        items: Sequence[TransferItemInput] | None = None,
        notes: str | None = None,
    ) -> StockTransfer:
        """Fulfil a requisition: source to delivery location, expected quantities."""
        with self._unit_of_work("create_transfer_from_requisition", actor_id, requisition_id):
            requisition = self._load(RequisitionModel, requisition_id)
            if items is None:
                items = [
                    TransferItemInput(
                        item_id=item.item_id,
                        quantity=item.quantity_expected,
                        unit=item.unit,
                        cost_per_unit=item.estimated_cost,
                        notes=item.notes,
                    )
                    for item in requisition.items
                ]
            transfer = self._new_transfer(
                source_location_id=requisition.source_location_id,
                destination_location_id=requisition.delivery_location_id,
                items=items,
                actor_id=actor_id,
                transfer_type=TransferType.REQUISITION_FULFILLMENT,
                notes=notes or f"Stock transfer from Requisition {requisition.requisition_number}",
                requisition_id=requisition.id,
            )
        self._log_created(transfer)
        return transfer.to_dto()

    def create_from_purchase_order(
        self,
        po_id: UUID,
        destination_location_id: UUID,
        *,
        actor_id: UUID,
        source_location_id: UUID | None = None,
        items: Sequence[TransferItemInput] | None = None,
        notes: str | None = None,
    ) -> StockTransfer:
        """
        Distribute a purchase order's goods to one of its delivery locations.

        The source defaults to the PO's central delivery location.  Without
        explicit ``items`` the transfer carries the PO lines addressed to
        ``destination_location_id`` (lines with no delivery location go
        everywhere).
        """
        with self._unit_of_work("create_transfer_from_purchase_order", actor_id, po_id):
            po = self._load(PurchaseOrderModel, po_id)
            source = source_location_id or po.central_delivery_location_id
            if source is None:
                raise ValidationFailureError(
                    f"Purchase order {po.po_number} has no central delivery location",
                    field="source_location_id",
                )
            if items is None:
                items = [
                    TransferItemInput(
                        item_id=item.item_id,
                        quantity=item.quantity,
                        unit=item.unit,
                        cost_per_unit=item.unit_price,
                    )
                    for item in po.items
                    if item.delivery_location_id in (None, destination_location_id)
                ]
            transfer = self._new_transfer(
                source_location_id=source,
                destination_location_id=destination_location_id,
                items=items,
                actor_id=actor_id,
                transfer_type=TransferType.PO_DISTRIBUTION,
                notes=notes or f"Stock transfer from Purchase Order {po.po_number}",
                purchase_order_id=po.id,
            )
        self._log_created(transfer)
        return transfer.to_dto()

    # =========================================================================
    # Steps
    # =========================================================================

    def approve(self, transfer_id: UUID, *, actor_id: UUID) -> StockTransfer:
        with self._unit_of_work("approve_stock_transfer", actor_id, transfer_id):
            transfer = self._step(transfer_id, "approve", actor_id)
            transfer.approved_by = actor_id
            transfer.approved_at = self._clock.now()
            self._session.flush()
        return transfer.to_dto()

    def dispatch(
        self,
        transfer_id: UUID,
        *,
        actor_id: UUID,
        dispatched: Sequence[ReceivedQuantity] | None = None,
    ) -> StockTransfer:
        """Take goods out of the source; quantities default to those requested."""
        overrides = _quantities(dispatched, "quantity_dispatched")
        with self._unit_of_work("dispatch_stock_transfer", actor_id, transfer_id):
            transfer = self._step(transfer_id, "dispatch", actor_id)
            _check_items(transfer, overrides)
            for item in transfer.items:
                item.quantity_dispatched = overrides.get(item.item_id, item.quantity_requested)
                item.updated_by_id = actor_id
            source = transfer.source_location_id
            shortages = self._stock.lock_and_check(
                source,
                aggregate_requests(
                    StockRequest(item.item_id, item.quantity_dispatched)
                    for item in transfer.items
                ),
            )
            if shortages:
                raise StockShortageError(source, shortages)
            for item in _in_lock_order(transfer):
                self._stock.adjust(
                    transfer.source_location_id,
                    item.item_id,
                    item.quantity_dispatched,
                    StockOperation.SUBTRACT,
                    actor_id=actor_id,
                    movement_type=MovementType.TRANSFER_OUT,
                    reference_type=ReferenceType.STOCK_TRANSFER,
                    reference_id=transfer.id,
                    unit_cost=item.cost_per_unit,
                    notes=f"Transfer {transfer.transfer_number} dispatched",
                    create_missing=True,
                )
            transfer.dispatched_at = self._clock.now()
            self._session.flush()
        return transfer.to_dto()

    def mark_in_transit(self, transfer_id: UUID, *, actor_id: UUID) -> StockTransfer:
        with self._unit_of_work("mark_transfer_in_transit", actor_id, transfer_id):
            transfer = self._step(transfer_id, "mark_in_transit", actor_id)
            self._session.flush()
        return transfer.to_dto()

    def receive(
        self,
        transfer_id: UUID,
        *,
        actor_id: UUID,
        received: Sequence[ReceivedQuantity] | None = None,
    ) -> StockTransfer:
        """Put goods into the destination; quantities default to those dispatched."""
        overrides = _quantities(received, "quantity_received")
        with self._unit_of_work("receive_stock_transfer", actor_id, transfer_id):
            transfer = self._step(transfer_id, "receive", actor_id)
            _check_items(transfer, overrides)
            for item in _in_lock_order(transfer):
                item.quantity_received = overrides.get(item.item_id, item.quantity_dispatched)
                if item.quantity_received > item.quantity_dispatched:
                    raise ValidationFailureError(
                        f"Received quantity for item {item.item_id} exceeds the "
                        f"{item.quantity_dispatched} dispatched",
                        field="quantity_received",
                    )
                item.updated_by_id = actor_id
                self._stock.adjust(
                    transfer.destination_location_id,
                    item.item_id,
                    item.quantity_received,
                    StockOperation.ADD,
                    actor_id=actor_id,
                    movement_type=MovementType.TRANSFER_IN,
                    reference_type=ReferenceType.STOCK_TRANSFER,
                    reference_id=transfer.id,
                    unit_cost=item.cost_per_unit,
                    notes=f"Transfer {transfer.transfer_number} received",
                    create_missing=True,
                )
            transfer.received_at = self._clock.now()
            self._session.flush()
        return transfer.to_dto()

    def cancel(self, transfer_id: UUID, *, actor_id: UUID) -> StockTransfer:
        with self._unit_of_work("cancel_stock_transfer", actor_id, transfer_id):
            transfer = self._step(transfer_id, "cancel", actor_id)
            self._session.flush()
        return transfer.to_dto()

    # =========================================================================
    # Internal
    # =========================================================================

    def _step(self, transfer_id: UUID, action: str, actor_id: UUID) -> StockTransferModel:
        transfer = self._load(StockTransferModel, transfer_id, lock=True)
        satisfied = frozenset()
        if transfer.dispatched_at is not None:
            satisfied = frozenset({SOURCE_STOCK_POSTED.name})
        transition = STOCK_TRANSFER_WORKFLOW.require(
            transfer.status, action, self.entity_type, transfer_id, satisfied=satisfied,
        )
        previous = transfer.status
        transfer.status = transition.to_state
        transfer.updated_by_id = actor_id
        logger.info(
            "stock_transfer_status_changed",
            extra={
                "transfer_id": str(transfer_id),
                "transfer_number": transfer.transfer_number,
                "from_status": previous,
                "to_status": transfer.status,
                "moves_stock": transition.moves_stock,
            },
        )
        return transfer

    def _new_transfer(
        self,
        *,
        source_location_id: UUID,
        destination_location_id: UUID,
        items: Sequence[TransferItemInput],
        actor_id: UUID,
        transfer_type: TransferType,
        notes: str | None,
        requisition_id: UUID | None = None,
        purchase_order_id: UUID | None = None,
        grn_id: UUID | None = None,
        purchase_entry_id: UUID | None = None,
    ) -> StockTransferModel:
        require_lines(items)
        if source_location_id == destination_location_id:
            raise ValidationFailureError(
                "Source and destination locations must differ",
                field="destination_location_id",
            )
        self._require_items(line.item_id for line in items)

        transfer = StockTransferModel(
            transfer_number=self._next_number(DOCUMENT_PREFIX),
            source_location_id=source_location_id,
            destination_location_id=destination_location_id,
            transfer_type=transfer_type.value,
            status=STOCK_TRANSFER_WORKFLOW.initial_state,
            requisition_id=requisition_id,
            purchase_order_id=purchase_order_id,
            grn_id=grn_id,
            purchase_entry_id=purchase_entry_id,
            notes=notes,
            created_by_id=actor_id,
        )
        transfer.items = [
            StockTransferItemModel(
                item_id=line.item_id,
                quantity_requested=require_positive(line.quantity, line.item_id),
                unit=line.unit,
                cost_per_unit=line.cost_per_unit,
                batch_number=line.batch_number,
                expiry_date=line.expiry_date,
                notes=line.notes,
                created_by_id=actor_id,
            )
            for line in items
        ]
        self._session.add(transfer)
        self._session.flush()
        return transfer

    @staticmethod
    def _log_created(transfer: StockTransferModel) -> None:
        logger.info(
            "stock_transfer_created",
            extra={
                "transfer_id": str(transfer.id),
                "transfer_number": transfer.transfer_number,
                "transfer_type": transfer.transfer_type,
                "source_location_id": str(transfer.source_location_id),
                "destination_location_id": str(transfer.destination_location_id),
                "line_count": len(transfer.items),
            },
        )


def _quantities(
    entries: Sequence[ReceivedQuantity] | None,
    field: str,
) -> dict[UUID, Decimal]:
    return {
        entry.item_id: require_non_negative(entry.quantity, entry.item_id, field)
        for entry in entries or ()
    }


def _check_items(transfer: StockTransferModel, overrides: dict[UUID, Decimal]) -> None:
    unknown = sorted(overrides.keys() - {i.item_id for i in transfer.items}, key=str)
    if unknown:
        raise ValidationFailureError(
            f"Item {unknown[0]} is not on transfer {transfer.transfer_number}",
            field="items",
        )


def _in_lock_order(transfer: StockTransferModel) -> list[StockTransferItemModel]:
    return sorted(transfer.items, key=lambda i: str(i.item_id))
