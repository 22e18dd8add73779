"""
Tests for OrderService.

Stock is deducted exactly once, on the transition into approved; shortages
leave nothing behind.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.domain.dtos import MovementType, ReferenceType, StockRequest
from inventory_kernel.exceptions import (
    NotFoundError,
    StockShortageError,
    ValidationFailureError,
)
from inventory_kernel.selectors.movement_selector import MovementSelector
from inventory_modules.orders import OrderOutcome, OrderPatch, OrderService, OrderStatus


@pytest.fixture
def hook_calls():
    return []


@pytest.fixture
def order_service(session, deterministic_clock, hook_calls):
    return OrderService(
        session, deterministic_clock, on_mutation=lambda: hook_calls.append(1),
    )


@pytest.fixture
def stocked(make_item, put_stock, location_id):
    """Two items with 10 and 4 units at the test location."""
    flour, sugar = make_item("Flour"), make_item("Sugar")
    put_stock(location_id, flour.id, "10")
    put_stock(location_id, sugar.id, "4")
    return flour, sugar


class TestCreateOrder:

    def test_pending_order_does_not_touch_stock(
        self, order_service, stocked, available, location_id, test_actor_id,
    ):
        flour, _ = stocked

        result = order_service.create_order(
            location_id, [StockRequest(flour.id, Decimal("3"))], actor_id=test_actor_id,
        )

        assert result.is_success
        assert result.order.status == OrderStatus.PENDING.value
        assert result.order.stock_deducted_at is None
        assert available(location_id, flour.id) == Decimal("10")

    def test_approved_order_deducts_and_ledgers_sales(
        self, session, order_service, stocked, available, location_id, test_actor_id,
    ):
        flour, sugar = stocked

        result = order_service.create_order(
            location_id,
            [StockRequest(flour.id, Decimal("3")), StockRequest(sugar.id, Decimal("4"))],
            actor_id=test_actor_id,
            status=OrderStatus.APPROVED.value,
        )

        assert result.outcome == OrderOutcome.CREATED
        assert result.order.stock_deducted_at is not None
        assert available(location_id, flour.id) == Decimal("7")
        assert available(location_id, sugar.id) == Decimal("0")
        movements = MovementSelector(session).by_reference(ReferenceType.ORDER, result.order.id)
        assert {m.movement_type for m in movements} == {MovementType.SALE}
        assert sorted(m.quantity for m in movements) == [Decimal("-4"), Decimal("-3")]

    def test_shortage_writes_nothing(
        self, session, order_service, stocked, available, location_id, test_actor_id,
        hook_calls,
    ):
        flour, sugar = stocked

        result = order_service.create_order(
            location_id,
            [StockRequest(flour.id, Decimal("2")), StockRequest(sugar.id, Decimal("5"))],
            actor_id=test_actor_id,
            status=OrderStatus.APPROVED.value,
        )

        assert result.outcome == OrderOutcome.SHORTAGE
        assert [s.item_id for s in result.shortages] == [sugar.id]
        assert result.shortages[0].available == Decimal("4")
        assert str(sugar.id) in result.message
        assert order_service.list_orders() == []
        assert available(location_id, flour.id) == Decimal("10")
        assert hook_calls == []

    def test_duplicate_lines_are_checked_together(
        self, order_service, stocked, location_id, test_actor_id,
    ):
        _, sugar = stocked

        result = order_service.create_order(
            location_id,
            [StockRequest(sugar.id, Decimal("3")), StockRequest(sugar.id, Decimal("3"))],
            actor_id=test_actor_id,
        )

        assert not result.is_success
        assert result.shortages[0].requested == Decimal("6")

    def test_pending_order_is_still_checked(
        self, order_service, make_item, location_id, test_actor_id,
    ):
        item = make_item()

        result = order_service.create_order(
            location_id, [StockRequest(item.id, Decimal("1"))], actor_id=test_actor_id,
        )

        assert result.outcome == OrderOutcome.SHORTAGE

    @pytest.mark.parametrize("items", [[], [("qty", "0")], [("qty", "-1")]])
    def test_invalid_lines_rejected(
        self, order_service, stocked, location_id, test_actor_id, items,
    ):
        flour, _ = stocked
        requests = [StockRequest(flour.id, Decimal(q)) for _, q in items]

        with pytest.raises(ValidationFailureError):
            order_service.create_order(location_id, requests, actor_id=test_actor_id)

    def test_hook_runs_after_commit(
        self, order_service, stocked, location_id, test_actor_id, hook_calls,
    ):
        flour, _ = stocked

        order_service.create_order(
            location_id, [StockRequest(flour.id, Decimal("1"))], actor_id=test_actor_id,
        )

        assert hook_calls == [1]


class TestUpdateOrder:

    def _pending(self, order_service, item_id, location_id, actor_id, quantity="3"):
        return order_service.create_order(
            location_id, [StockRequest(item_id, Decimal(quantity))], actor_id=actor_id,
        ).order

    def test_approval_deducts_exactly_once(
        self, session, order_service, stocked, available, location_id, test_actor_id,
    ):
        flour, _ = stocked
        order = self._pending(order_service, flour.id, location_id, test_actor_id)

        order_service.update_status(order.id, OrderStatus.APPROVED.value, actor_id=test_actor_id)
        again = order_service.update_status(
            order.id, OrderStatus.APPROVED.value, actor_id=test_actor_id,
        )

        assert again.is_success
        assert available(location_id, flour.id) == Decimal("7")
        assert len(MovementSelector(session).by_reference(ReferenceType.ORDER, order.id)) == 1

    def test_leaving_and_reentering_approved_does_not_deduct_again(
        self, order_service, stocked, available, location_id, test_actor_id,
    ):
        flour, _ = stocked
        order = self._pending(order_service, flour.id, location_id, test_actor_id)
        order_service.update_status(order.id, OrderStatus.APPROVED.value, actor_id=test_actor_id)

        order_service.update_status(order.id, OrderStatus.PENDING.value, actor_id=test_actor_id)
        order_service.update_status(order.id, OrderStatus.APPROVED.value, actor_id=test_actor_id)

        assert available(location_id, flour.id) == Decimal("7")

    def test_approval_shortage_raises_and_rolls_back(
        self, order_service, stocked, available, location_id, test_actor_id,
    ):
        flour, _ = stocked
        order = self._pending(order_service, flour.id, location_id, test_actor_id, "8")
        order_service.create_order(
            location_id, [StockRequest(flour.id, Decimal("5"))],
            actor_id=test_actor_id, status=OrderStatus.APPROVED.value,
        )

        with pytest.raises(StockShortageError) as exc_info:
            order_service.update_order(
                order.id,
                OrderPatch(status=OrderStatus.APPROVED.value, notes="rush"),
                actor_id=test_actor_id,
            )

        assert exc_info.value.shortages[0].available == Decimal("5")
        reloaded = order_service.get_order(order.id)
        assert reloaded.status == OrderStatus.PENDING.value
        assert reloaded.notes is None
        assert available(location_id, flour.id) == Decimal("5")

    def test_items_replaced_before_approval_are_what_gets_deducted(
        self, order_service, stocked, available, location_id, test_actor_id,
    ):
        flour, sugar = stocked
        order = self._pending(order_service, flour.id, location_id, test_actor_id)

        result = order_service.update_order(
            order.id,
            OrderPatch(
                status=OrderStatus.APPROVED.value,
                items=(StockRequest(sugar.id, Decimal("2")),),
            ),
            actor_id=test_actor_id,
        )

        assert [line.item_id for line in result.order.lines] == [sugar.id]
        assert available(location_id, flour.id) == Decimal("10")
        assert available(location_id, sugar.id) == Decimal("2")

    def test_item_replacement_after_deduction_rejected(
        self, order_service, stocked, location_id, test_actor_id,
    ):
        flour, sugar = stocked
        order = order_service.create_order(
            location_id, [StockRequest(flour.id, Decimal("1"))],
            actor_id=test_actor_id, status=OrderStatus.APPROVED.value,
        ).order

        with pytest.raises(ValidationFailureError) as exc_info:
            order_service.update_order(
                order.id,
                OrderPatch(items=(StockRequest(sugar.id, Decimal("1")),)),
                actor_id=test_actor_id,
            )
        assert exc_info.value.field == "items"

    def test_empty_patch_rejected(self, order_service, test_actor_id):
        with pytest.raises(ValidationFailureError, match="No fields to update"):
            order_service.update_order(uuid4(), OrderPatch(), actor_id=test_actor_id)

    def test_unknown_order(self, order_service, test_actor_id):
        with pytest.raises(NotFoundError):
            order_service.update_order(
                uuid4(), OrderPatch(notes="x"), actor_id=test_actor_id,
            )


class TestDeleteOrder:

    def test_delete_keeps_deducted_stock(
        self, order_service, stocked, available, location_id, test_actor_id, hook_calls,
    ):
        flour, _ = stocked
        order = order_service.create_order(
            location_id, [StockRequest(flour.id, Decimal("2"))],
            actor_id=test_actor_id, status=OrderStatus.APPROVED.value,
        ).order

        order_service.delete_order(order.id, actor_id=test_actor_id)

        with pytest.raises(NotFoundError):
            order_service.get_order(order.id)
        assert available(location_id, flour.id) == Decimal("8")
        assert hook_calls == [1, 1]

    def test_delete_is_logged_with_actor_context(
        self, order_service, stocked, location_id, test_actor_id, captured_logs,
    ):
        flour, _ = stocked
        order = order_service.create_order(
            location_id, [StockRequest(flour.id, Decimal("1"))], actor_id=test_actor_id,
        ).order

        order_service.delete_order(order.id, actor_id=test_actor_id)

        deleted = [r for r in captured_logs() if r["message"] == "order_deleted"]
        assert len(deleted) == 1
        assert deleted[0]["operation"] == "delete_order"
        assert deleted[0]["actor_id"] == str(test_actor_id)
        assert deleted[0]["entity_id"] == str(order.id)


class TestPostMutationHook:

    def test_hook_failure_is_logged_not_raised(
        self, session, deterministic_clock, stocked, location_id, test_actor_id,
        captured_logs,
    ):
        flour, _ = stocked

        def broken_hook():
            raise RuntimeError("dispatcher offline")

        service = OrderService(session, deterministic_clock, on_mutation=broken_hook)
        result = service.create_order(
            location_id, [StockRequest(flour.id, Decimal("1"))], actor_id=test_actor_id,
        )

        assert result.is_success
        assert service.get_order(result.order.id).status == OrderStatus.PENDING.value
        assert any(r["message"] == "post_mutation_hook_failed" for r in captured_logs())
