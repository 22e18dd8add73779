"""
Requisition Service (``inventory_modules.supply_chain.requisitions``).

Responsibility
--------------
Internal requests to move stock from a source location to a delivery
location.  A requisition is edited and deleted only while ``pending``,
approved once, and received once with the actual per-item quantities.

Failure Modes
-------------
- ``InvalidTransitionError`` for a step out of order.
- ``NotFoundError`` for an unknown requisition or item.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.dtos import coerce_enum
from inventory_kernel.exceptions import InvalidTransitionError, ValidationFailureError
from inventory_kernel.logging_config import get_logger
from inventory_modules.supply_chain.base import (
    SupplyChainService,
    require_lines,
    require_positive,
)
from inventory_modules.supply_chain.models import (
    ReceivedQuantity,
    Requisition,
    RequisitionItemInput,
    RequisitionPatch,
    RequisitionPriority,
    RequisitionStatus,
)
from inventory_modules.supply_chain.orm import RequisitionItemModel, RequisitionModel
from inventory_modules.supply_chain.workflows import REQUISITION_WORKFLOW

logger = get_logger("modules.supply_chain.requisitions")

DOCUMENT_PREFIX = "REQ"


class RequisitionService(SupplyChainService):
    """Requisition lifecycle: pending -> approved -> received."""

    entity_type = "Requisition"

    def get(self, requisition_id: UUID) -> Requisition:
        return self._load(RequisitionModel, requisition_id).to_dto()

    def list(
        self,
        status: RequisitionStatus | None = None,
        source_location_id: UUID | None = None,
    ) -> list[Requisition]:
        stmt = select(RequisitionModel).order_by(RequisitionModel.created_at.desc())
        if status is not None:
            stmt = stmt.where(RequisitionModel.status == coerce_enum(RequisitionStatus, status, "status").value)
        if source_location_id is not None:
            stmt = stmt.where(RequisitionModel.source_location_id == source_location_id)
        return [r.to_dto() for r in self._session.execute(stmt).scalars().all()]

    def create(
        self,
        source_location_id: UUID,
        delivery_location_id: UUID,
        items: Sequence[RequisitionItemInput],
        *,
        actor_id: UUID,
        priority: RequisitionPriority = RequisitionPriority.MEDIUM,
        requisition_type: str = "stock_transfer",
        expected_delivery_date: date | None = None,
        notes: str | None = None,
    ) -> Requisition:
        require_lines(items)
        with self._unit_of_work("create_requisition", actor_id):
            self._require_items(line.item_id for line in items)
            requisition = RequisitionModel(
                requisition_number=self._next_number(DOCUMENT_PREFIX),
                source_location_id=source_location_id,
                delivery_location_id=delivery_location_id,
                requisition_type=requisition_type,
                priority=coerce_enum(RequisitionPriority, priority, "priority").value,
                status=REQUISITION_WORKFLOW.initial_state,
                expected_delivery_date=expected_delivery_date,
                notes=notes,
                created_by_id=actor_id,
            )
            requisition.items = self._build_items(items, actor_id)
            self._session.add(requisition)
            self._session.flush()

        logger.info(
            "requisition_created",
            extra={
                "requisition_id": str(requisition.id),
                "requisition_number": requisition.requisition_number,
                "line_count": len(requisition.items),
            },
        )
        return requisition.to_dto()

    def update(
        self,
        requisition_id: UUID,
        patch: RequisitionPatch,
        *,
        actor_id: UUID,
    ) -> Requisition:
        if patch.is_empty:
            raise ValidationFailureError("No fields to update")
        if patch.items is not None:
            require_lines(patch.items)

        with self._unit_of_work("update_requisition", actor_id, requisition_id):
            requisition = self._load(RequisitionModel, requisition_id, lock=True)
            REQUISITION_WORKFLOW.require(
                requisition.status, "update", self.entity_type, requisition_id,
            )
            if patch.source_location_id is not None:
                requisition.source_location_id = patch.source_location_id
            if patch.delivery_location_id is not None:
                requisition.delivery_location_id = patch.delivery_location_id
            if patch.priority is not None:
                requisition.priority = coerce_enum(RequisitionPriority, patch.priority, "priority").value
            if patch.expected_delivery_date is not None:
                requisition.expected_delivery_date = patch.expected_delivery_date
            if patch.notes is not None:
                requisition.notes = patch.notes
            if patch.items is not None:
                self._require_items(line.item_id for line in patch.items)
                requisition.items = self._build_items(patch.items, actor_id)
            requisition.updated_by_id = actor_id
            self._session.flush()

        logger.info("requisition_updated", extra={"requisition_id": str(requisition_id)})
        return requisition.to_dto()

    def approve(self, requisition_id: UUID, *, actor_id: UUID) -> Requisition:
        with self._unit_of_work("approve_requisition", actor_id, requisition_id):
            requisition = self._load(RequisitionModel, requisition_id, lock=True)
            transition = REQUISITION_WORKFLOW.require(
                requisition.status, "approve", self.entity_type, requisition_id,
            )
            requisition.status = transition.to_state
            requisition.approved_by = actor_id
            requisition.approved_at = self._clock.now()
            requisition.updated_by_id = actor_id
            self._session.flush()

        logger.info(
            "requisition_approved",
            extra={"requisition_id": str(requisition_id), "approved_by": str(actor_id)},
        )
        return requisition.to_dto()

    def receive(
        self,
        requisition_id: UUID,
        received_items: Sequence[ReceivedQuantity],
        *,
        actor_id: UUID,
    ) -> Requisition:
        """
        Mark an approved requisition received, recording actual quantities.

        Items not listed keep ``quantity_received`` unset.  Listing an item
        that is not on the requisition is a validation error.
        """
        received = {}
        for entry in received_items:
            if Decimal(entry.quantity) < 0:
                raise ValidationFailureError(
                    f"Received quantity for item {entry.item_id} must not be negative",
                    field="quantity_received",
                )
            received[entry.item_id] = Decimal(entry.quantity)

        with self._unit_of_work("receive_requisition", actor_id, requisition_id):
            requisition = self._load(RequisitionModel, requisition_id, lock=True)
            transition = REQUISITION_WORKFLOW.require(
                requisition.status, "receive", self.entity_type, requisition_id,
            )
            on_requisition = {item.item_id for item in requisition.items}
            unknown = sorted(set(received) - on_requisition, key=str)
            if unknown:
                raise ValidationFailureError(
                    f"Item {unknown[0]} is not on requisition "
                    f"{requisition.requisition_number}",
                    field="received_items",
                )
            for item in requisition.items:
                if item.item_id in received:
                    item.quantity_received = received[item.item_id]
                    item.updated_by_id = actor_id
            requisition.status = transition.to_state
            requisition.received_at = self._clock.now()
            requisition.updated_by_id = actor_id
            self._session.flush()

        logger.info(
            "requisition_received",
            extra={
                "requisition_id": str(requisition_id),
                "received_line_count": len(received),
            },
        )
        return requisition.to_dto()

    def delete(self, requisition_id: UUID, *, actor_id: UUID) -> None:
        with self._unit_of_work("delete_requisition", actor_id, requisition_id):
            requisition = self._load(RequisitionModel, requisition_id, lock=True)
            if requisition.status != RequisitionStatus.PENDING.value:
                raise InvalidTransitionError(
                    entity_type=self.entity_type,
                    entity_id=requisition_id,
                    from_state=requisition.status,
                    action="delete",
                )
            self._session.delete(requisition)
            self._session.flush()

        logger.info("requisition_deleted", extra={"requisition_id": str(requisition_id)})

    @staticmethod
    def _build_items(
        items: Sequence[RequisitionItemInput],
        actor_id: UUID,
    ) -> list[RequisitionItemModel]:
        return [
            RequisitionItemModel(
                item_id=line.item_id,
                quantity_expected=require_positive(
                    line.quantity_expected, line.item_id, "quantity_expected",
                ),
                unit=line.unit,
                estimated_cost=line.estimated_cost,
                notes=line.notes,
                created_by_id=actor_id,
            )
            for line in items
        ]
