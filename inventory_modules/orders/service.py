"""
Order Fulfillment Service (``inventory_modules.orders.service``).

Responsibility
--------------
Creates, updates and deletes orders and deducts their stock from the
order's location exactly once, on the transition into ``approved``.

Architecture
------------
Layer: **Modules** -- stateful orchestration over
``LocationStockStore`` (balances + ledger).

Invariants
----------
- Each public method owns its transaction boundary: commit on success,
  rollback on any failure or shortage.
- Check-then-deduct runs under row locks on every (location, item) pair
  involved, taken in sorted item order, so two concurrent approvals cannot
  both pass the availability check.
- Deduction fires only when the previous status is not ``approved`` and
  the order has never been deducted; re-submitting ``approved`` is a no-op.
- Deduction is all-or-nothing across the order's lines.

Failure Modes
-------------
- ``create_order`` reports shortages via ``OrderResult`` (nothing is
  written).
- ``update_order`` raises ``StockShortageError`` when approval finds a
  shortage; the whole update (including item replacement) rolls back.
- Database errors surface as ``InternalError``; the driver error is logged
  and chained, not exposed.

Post-mutation hook
------------------
After every committed create / update / delete the injected
``on_mutation`` callable runs (normally ``SweepDispatcher.request_sweep``,
which returns immediately).  Its failures are logged and never reach the
caller.

Usage::

    service = OrderService(session, clock, on_mutation=dispatcher.request_sweep)
    result = service.create_order(
        location_id, [StockRequest(item_id, Decimal("5"))], actor_id=actor,
    )
    if not result.is_success:
        ...  # result.shortages
"""

from __future__ import annotations

from collections import OrderedDict
from decimal import Decimal
from typing import Callable, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    MovementType,
    ReferenceType,
    StockOperation,
    StockRequest,
)
from inventory_kernel.exceptions import (
    InternalError,
    InventoryKernelError,
    NotFoundError,
    StockShortageError,
    ValidationFailureError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.services.location_stock_store import (
    LocationStockStore,
    aggregate_requests,
)
from inventory_modules.orders.models import (
    Order,
    OrderPatch,
    OrderResult,
    OrderStatus,
)
from inventory_modules.orders.orm import OrderItemModel, OrderModel

logger = get_logger("modules.orders.service")


class OrderService:
    """
    Order lifecycle with exactly-once stock deduction.

    Transaction boundary: this service commits on success, rolls back on
    failure.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        on_mutation: Callable[[], object] | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._stock = LocationStockStore(session, self._clock)
        self._on_mutation = on_mutation

    # =========================================================================
    # Reads
    # =========================================================================

    def get_order(self, order_id: UUID) -> Order:
        order = self._session.get(OrderModel, order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        return order.to_dto()

    def list_orders(
        self,
        status: str | None = None,
        location_id: UUID | None = None,
    ) -> list[Order]:
        stmt = select(OrderModel).order_by(OrderModel.created_at.desc())
        if status is not None:
            stmt = stmt.where(OrderModel.status == status)
        if location_id is not None:
            stmt = stmt.where(OrderModel.location_id == location_id)
        return [o.to_dto() for o in self._session.execute(stmt).scalars().all()]

    # =========================================================================
    # Mutations
    # =========================================================================

    def create_order(
        self,
        location_id: UUID,
        items: Sequence[StockRequest],
        *,
        actor_id: UUID,
        status: str = OrderStatus.PENDING.value,
        approver_id: UUID | None = None,
        notes: str | None = None,
    ) -> OrderResult:
        """
        Create an order after checking every line against locked stock.

        Postconditions:
            - On shortage: nothing written, result lists every short item.
            - Otherwise the order and its lines exist; if ``status`` is
              ``approved`` the stock has been deducted and ledgered as
              ``sale`` movements referencing the order.
        """
        _validate_status(status)
        _validate_items(items)

        with LogContext.bind(actor_id=str(actor_id), operation="create_order"):
            try:
                totals = aggregate_requests(items)
                shortages = self._stock.lock_and_check(location_id, totals)
                if shortages:
                    self._session.rollback()
                    logger.info(
                        "order_rejected_shortage",
                        extra={
                            "location_id": str(location_id),
                            "short_items": [str(s.item_id) for s in shortages],
                        },
                    )
                    return OrderResult.shortage(shortages)

                order = OrderModel(
                    location_id=location_id,
                    status=status,
                    approver_id=approver_id,
                    notes=notes,
                    created_by_id=actor_id,
                )
                order.items = [
                    OrderItemModel(
                        item_id=line.item_id,
                        quantity=Decimal(line.quantity),
                        created_by_id=actor_id,
                    )
                    for line in items
                ]
                self._session.add(order)
                self._session.flush()

                if status == OrderStatus.APPROVED.value:
                    self._deduct(order, totals, actor_id)

                self._session.commit()
            except InventoryKernelError:
                self._session.rollback()
                raise
            except SQLAlchemyError as exc:
                self._session.rollback()
                logger.exception("order_create_failed")
                raise InternalError("create_order") from exc
            except Exception:
                self._session.rollback()
                logger.exception("order_create_failed")
                raise

            logger.info(
                "order_created",
                extra={
                    "order_id": str(order.id),
                    "status": order.status,
                    "line_count": len(order.items),
                    "deducted": order.stock_deducted_at is not None,
                },
            )
            result = OrderResult.created(order.to_dto())

        self._notify_mutation()
        return result

    def update_order(
        self,
        order_id: UUID,
        patch: OrderPatch,
        *,
        actor_id: UUID,
    ) -> OrderResult:
        """
        Apply a patch; deduct stock when the order becomes approved.

        Raises:
            NotFoundError: unknown order.
            ValidationFailureError: empty patch, bad lines, or item
                replacement after deduction.
            StockShortageError: approval found a short line.
        """
        if patch.is_empty:
            raise ValidationFailureError("No fields to update")
        if patch.status is not None:
            _validate_status(patch.status)
        if patch.items is not None:
            _validate_items(patch.items)

        with LogContext.bind(
            actor_id=str(actor_id), operation="update_order", entity_id=str(order_id),
        ):
            try:
                order = self._lock_order(order_id)
                previous_status = order.status

                if patch.items is not None:
                    if order.stock_deducted_at is not None:
                        raise ValidationFailureError(
                            "Items cannot be replaced after stock was deducted",
                            field="items",
                        )
                    order.items = [
                        OrderItemModel(
                            item_id=line.item_id,
                            quantity=Decimal(line.quantity),
                            created_by_id=actor_id,
                        )
                        for line in patch.items
                    ]
                if patch.notes is not None:
                    order.notes = patch.notes
                if patch.approver_id is not None:
                    order.approver_id = patch.approver_id
                if patch.status is not None:
                    order.status = patch.status
                order.updated_by_id = actor_id
                self._session.flush()

                becomes_approved = (
                    patch.status == OrderStatus.APPROVED.value
                    and previous_status != OrderStatus.APPROVED.value
                    and order.stock_deducted_at is None
                )
                if becomes_approved:
                    totals = aggregate_requests(
                        StockRequest(item.item_id, item.quantity) for item in order.items
                    )
                    shortages = self._stock.lock_and_check(order.location_id, totals)
                    if shortages:
                        raise StockShortageError(order.location_id, shortages)
                    self._deduct(order, totals, actor_id)

                self._session.commit()
            except InventoryKernelError as exc:
                self._session.rollback()
                logger.info(
                    "order_update_rejected",
                    extra={"order_id": str(order_id), "error_code": exc.code},
                )
                raise
            except SQLAlchemyError as exc:
                self._session.rollback()
                logger.exception("order_update_failed", extra={"order_id": str(order_id)})
                raise InternalError("update_order") from exc
            except Exception:
                self._session.rollback()
                logger.exception("order_update_failed", extra={"order_id": str(order_id)})
                raise

            logger.info(
                "order_updated",
                extra={
                    "order_id": str(order_id),
                    "previous_status": previous_status,
                    "status": order.status,
                    "deducted": becomes_approved,
                },
            )
            result = OrderResult.updated(order.to_dto())

        self._notify_mutation()
        return result

    def update_status(
        self,
        order_id: UUID,
        status: str,
        *,
        actor_id: UUID,
        approver_id: UUID | None = None,
    ) -> OrderResult:
        return self.update_order(
            order_id,
            OrderPatch(status=status, approver_id=approver_id),
            actor_id=actor_id,
        )

    def delete_order(self, order_id: UUID, *, actor_id: UUID) -> None:
        """Delete an order and its lines.  Deducted stock is not restored."""
        with LogContext.bind(
            actor_id=str(actor_id), operation="delete_order", entity_id=str(order_id),
        ):
            try:
                order = self._lock_order(order_id)
                self._session.delete(order)
                self._session.commit()
            except InventoryKernelError:
                self._session.rollback()
                raise
            except SQLAlchemyError as exc:
                self._session.rollback()
                logger.exception("order_delete_failed", extra={"order_id": str(order_id)})
                raise InternalError("delete_order") from exc
            except Exception:
                self._session.rollback()
                logger.exception("order_delete_failed", extra={"order_id": str(order_id)})
                raise

            logger.info("order_deleted", extra={"order_id": str(order_id)})

        self._notify_mutation()

    # =========================================================================
    # Internal
    # =========================================================================

    def _lock_order(self, order_id: UUID) -> OrderModel:
        order = self._session.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    def _deduct(
        self,
        order: OrderModel,
        totals: OrderedDict[UUID, Decimal],
        actor_id: UUID,
    ) -> None:
        for item_id in sorted(totals, key=str):
            self._stock.adjust(
                order.location_id,
                item_id,
                totals[item_id],
                StockOperation.SUBTRACT,
                actor_id=actor_id,
                movement_type=MovementType.SALE,
                reference_type=ReferenceType.ORDER,
                reference_id=order.id,
                notes=f"Order {order.id}",
            )
        now = self._clock.now()
        order.stock_deducted_at = now
        order.approved_at = now
        self._session.flush()

    def _notify_mutation(self) -> None:
        if self._on_mutation is None:
            return
        try:
            self._on_mutation()
        except Exception:
            logger.exception("post_mutation_hook_failed")


def _validate_items(items: Sequence[StockRequest]) -> None:
    if not items:
        raise ValidationFailureError("An order needs at least one item", field="items")
    for line in items:
        if Decimal(line.quantity) <= 0:
            raise ValidationFailureError(
                f"Quantity for item {line.item_id} must be positive, got {line.quantity}",
                field="quantity",
            )


def _validate_status(status: str) -> None:
    if not status or len(status) > 50:
        raise ValidationFailureError(f"Invalid order status {status!r}", field="status")
