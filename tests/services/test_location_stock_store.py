"""
Tests for LocationStockStore.

Covers adjust semantics (add / subtract floor / set), non-negativity,
the derived Item.stock_quantity cache, availability checks, and bulk
update partial failure.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.domain.dtos import (
    LocationStockPatch,
    MovementType,
    QuantityType,
    StockOperation,
    StockRequest,
)
from inventory_kernel.exceptions import (
    ConflictError,
    LocationStockNotFoundError,
    NotFoundError,
    ValidationFailureError,
)
from inventory_kernel.models.item import Item
from inventory_kernel.services.location_stock_store import aggregate_requests
from inventory_kernel.selectors.movement_selector import MovementSelector


class TestAdjust:

    def test_add_increases_available_and_writes_ledger(
        self, session, stock_store, make_item, put_stock, location_id, test_actor_id,
    ):
        item = make_item()
        put_stock(location_id, item.id, "10")

        balance = stock_store.adjust(
            location_id, item.id, Decimal("5"), StockOperation.ADD, actor_id=test_actor_id,
        )
        session.commit()

        assert balance.available_quantity == Decimal("15")
        movements = MovementSelector(session).by_item(item.id, location_id)
        assert [m.quantity for m in movements] == [Decimal("5"), Decimal("10")]
        assert movements[0].previous_quantity == Decimal("10")
        assert movements[0].new_quantity == Decimal("15")

    def test_subtract_floors_at_zero(
        self, session, stock_store, make_item, put_stock, location_id, test_actor_id,
    ):
        item = make_item()
        put_stock(location_id, item.id, "3")

        balance = stock_store.adjust(
            location_id, item.id, Decimal("8"), "subtract", actor_id=test_actor_id,
        )

        assert balance.available_quantity == Decimal("0")
        latest = MovementSelector(session).by_item(item.id, location_id, limit=1)[0]
        assert latest.quantity == Decimal("-3")
        assert latest.new_quantity == Decimal("0")

    def test_set_overwrites(
        self, stock_store, make_item, put_stock, location_id, test_actor_id,
    ):
        item = make_item()
        put_stock(location_id, item.id, "3")

        balance = stock_store.adjust(
            location_id, item.id, Decimal("42"), StockOperation.SET, actor_id=test_actor_id,
        )

        assert balance.available_quantity == Decimal("42")

    def test_reserved_change_is_not_ledgered(
        self, session, stock_store, make_item, put_stock, location_id, test_actor_id,
    ):
        item = make_item()
        put_stock(location_id, item.id, "10")

        balance = stock_store.adjust(
            location_id, item.id, Decimal("4"), StockOperation.ADD,
            QuantityType.RESERVED, actor_id=test_actor_id,
        )

        assert balance.reserved_quantity == Decimal("4")
        assert balance.available_quantity == Decimal("10")
        assert len(MovementSelector(session).by_item(item.id)) == 1

    def test_negative_quantity_rejected(
        self, stock_store, make_item, put_stock, location_id, test_actor_id,
    ):
        item = make_item()
        put_stock(location_id, item.id, "10")

        with pytest.raises(ValidationFailureError):
            stock_store.adjust(
                location_id, item.id, Decimal("-1"), StockOperation.ADD,
                actor_id=test_actor_id,
            )

    @pytest.mark.parametrize("operation, quantity_type", [
        ("multiply", "available"),
        ("add", "on_order"),
    ])
    def test_unknown_operation_or_field_rejected(
        self, stock_store, make_item, put_stock, location_id, test_actor_id,
        operation, quantity_type,
    ):
        item = make_item()
        put_stock(location_id, item.id, "10")

        with pytest.raises(ValidationFailureError):
            stock_store.adjust(
                location_id, item.id, Decimal("1"), operation, quantity_type,
                actor_id=test_actor_id,
            )

    def test_missing_row_raises_without_create_missing(
        self, stock_store, make_item, location_id, test_actor_id,
    ):
        item = make_item()

        with pytest.raises(LocationStockNotFoundError) as exc_info:
            stock_store.adjust(
                location_id, item.id, Decimal("1"), StockOperation.ADD,
                actor_id=test_actor_id,
            )
        assert str(item.id) in str(exc_info.value)

    def test_create_missing_creates_zero_row_first(
        self, stock_store, make_item, location_id, test_actor_id,
    ):
        item = make_item()

        balance = stock_store.adjust(
            location_id, item.id, Decimal("7"), StockOperation.ADD,
            actor_id=test_actor_id,
            movement_type=MovementType.PURCHASE,
            create_missing=True,
        )

        assert balance.available_quantity == Decimal("7")

    def test_item_stock_quantity_is_sum_over_locations(
        self, session, stock_store, make_item, put_stock,
        location_id, other_location_id, test_actor_id,
    ):
        item = make_item()
        put_stock(location_id, item.id, "10")
        put_stock(other_location_id, item.id, "2.5")

        stock_store.adjust(
            location_id, item.id, Decimal("4"), StockOperation.SUBTRACT,
            actor_id=test_actor_id,
        )
        session.commit()

        refreshed = session.get(Item, item.id)
        session.refresh(refreshed)
        assert refreshed.stock_quantity == Decimal("8.5")


class TestNonNegativity:
    """No sequence of adjustments drives available below zero."""

    def test_random_walk_never_negative(
        self, session, stock_store, make_item, put_stock, location_id, test_actor_id,
    ):
        item = make_item()
        put_stock(location_id, item.id, "5")

        steps = [
            (StockOperation.SUBTRACT, "3"),
            (StockOperation.SUBTRACT, "9"),
            (StockOperation.ADD, "2"),
            (StockOperation.SUBTRACT, "2.001"),
            (StockOperation.SET, "1"),
            (StockOperation.SUBTRACT, "1"),
        ]
        for operation, quantity in steps:
            balance = stock_store.adjust(
                location_id, item.id, Decimal(quantity), operation, actor_id=test_actor_id,
            )
            assert balance.available_quantity >= 0
        session.commit()

        assert stock_store.get(location_id, item.id).available_quantity == Decimal("0")


class TestCreate:

    def test_duplicate_pair_conflicts(
        self, stock_store, make_item, put_stock, location_id, test_actor_id,
    ):
        item = make_item()
        put_stock(location_id, item.id, "1")

        with pytest.raises(ConflictError):
            stock_store.create(location_id, item.id, actor_id=test_actor_id)

    def test_unknown_item_not_found(self, stock_store, location_id, test_actor_id):
        with pytest.raises(NotFoundError):
            stock_store.create(location_id, uuid4(), actor_id=test_actor_id)

    def test_opening_balance_is_ledgered(
        self, session, make_item, put_stock, location_id,
    ):
        item = make_item()
        put_stock(location_id, item.id, "12")

        movements = MovementSelector(session).by_item(item.id, location_id)
        assert len(movements) == 1
        assert movements[0].movement_type == MovementType.ADJUSTMENT
        assert movements[0].quantity == Decimal("12")


class TestCheckAvailability:

    def test_missing_row_counts_as_zero(self, stock_store, make_item, location_id):
        item = make_item()

        report = stock_store.check_availability(
            location_id, [StockRequest(item.id, Decimal("1"))],
        )

        assert not report.available
        assert report.shortages[0].available == Decimal("0")

    def test_duplicate_lines_are_summed(
        self, stock_store, make_item, put_stock, location_id,
    ):
        item = make_item()
        put_stock(location_id, item.id, "5")

        report = stock_store.check_availability(
            location_id,
            [StockRequest(item.id, Decimal("3")), StockRequest(item.id, Decimal("3"))],
        )

        assert not report.available
        assert report.shortages[0].requested == Decimal("6")

    def test_sufficient_stock(self, stock_store, make_item, put_stock, location_id):
        item = make_item()
        put_stock(location_id, item.id, "5")

        report = stock_store.check_availability(
            location_id, [StockRequest(item.id, Decimal("5"))],
        )

        assert report.available
        assert report.shortages == ()

    def test_lock_and_check_reports_only_short_items(
        self, stock_store, make_item, put_stock, location_id,
    ):
        flour, sugar, salt = make_item(), make_item(), make_item()
        put_stock(location_id, flour.id, "5")
        put_stock(location_id, sugar.id, "1")

        shortages = stock_store.lock_and_check(
            location_id,
            aggregate_requests([
                StockRequest(flour.id, Decimal("5")),
                StockRequest(sugar.id, Decimal("2")),
                StockRequest(salt.id, Decimal("1")),
            ]),
        )

        assert {(s.item_id, s.available) for s in shortages} == {
            (sugar.id, Decimal("1")),
            (salt.id, Decimal("0")),
        }


class TestBulkUpdate:

    def test_partial_failure_keeps_valid_updates(
        self, session, stock_store, make_item, put_stock, location_id, test_actor_id,
    ):
        first, second, third = make_item(), make_item(), make_item()
        put_stock(location_id, first.id, "1")
        put_stock(location_id, third.id, "1")

        result = stock_store.bulk_update(
            location_id,
            [
                LocationStockPatch(item_id=first.id, available_quantity=Decimal("9")),
                LocationStockPatch(item_id=second.id, available_quantity=Decimal("4")),
                LocationStockPatch(item_id=third.id),
            ],
            actor_id=test_actor_id,
        )
        session.commit()

        assert [b.item_id for b in result.success] == [first.id]
        assert [(e.index, e.item_id) for e in result.errors] == [
            (1, second.id),
            (2, third.id),
        ]
        assert result.errors[0].error == f"Location stock record not found for item {second.id}"
        assert result.errors[1].error == "No fields to update"
        assert stock_store.get(location_id, first.id).available_quantity == Decimal("9")
        assert stock_store.get(location_id, third.id).available_quantity == Decimal("1")

    def test_available_change_is_ledgered_as_adjustment(
        self, session, stock_store, make_item, put_stock, location_id, test_actor_id,
    ):
        item = make_item()
        put_stock(location_id, item.id, "2")

        stock_store.bulk_update(
            location_id,
            [LocationStockPatch(item_id=item.id, available_quantity=Decimal("6"),
                                min_quantity=Decimal("1"))],
            actor_id=test_actor_id,
        )

        latest = MovementSelector(session).by_item(item.id, limit=1)[0]
        assert latest.movement_type == MovementType.ADJUSTMENT
        assert latest.quantity == Decimal("4")
        assert stock_store.get(location_id, item.id).min_quantity == Decimal("1")

    def test_bulk_create_reports_duplicates(
        self, stock_store, make_item, put_stock, location_id, test_actor_id,
    ):
        existing, fresh = make_item(), make_item()
        put_stock(location_id, existing.id, "1")

        result = stock_store.bulk_create(
            location_id,
            [
                LocationStockPatch(item_id=existing.id, available_quantity=Decimal("3")),
                LocationStockPatch(item_id=fresh.id, available_quantity=Decimal("3")),
            ],
            actor_id=test_actor_id,
        )

        assert [b.item_id for b in result.success] == [fresh.id]
        assert result.errors[0].code == "CONFLICT"
