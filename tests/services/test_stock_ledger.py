"""
Tests for the stock ledger: StockLedger.record, MovementSelector reads,
balance reconciliation by replay, and append-only enforcement.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from inventory_kernel.domain.dtos import MovementType, ReferenceType, StockOperation
from inventory_kernel.exceptions import ImmutabilityViolationError, ValidationFailureError
from inventory_kernel.models.stock_movement import StockMovement
from inventory_kernel.selectors.movement_selector import MovementSelector
from inventory_kernel.services.stock_ledger import StockLedger


@pytest.fixture
def ledger(session, deterministic_clock):
    return StockLedger(session, deterministic_clock)


@pytest.fixture
def movements(session):
    return MovementSelector(session)


class TestRecord:

    def test_sequence_is_strictly_increasing(
        self, session, ledger, make_item, location_id, test_actor_id,
    ):
        item = make_item()
        first = ledger.record(
            item.id, location_id, MovementType.PURCHASE, Decimal("5"),
            ReferenceType.GRN, None, Decimal("0"), Decimal("5"),
            actor_id=test_actor_id,
        )
        second = ledger.record(
            item.id, location_id, "sale", Decimal("-2"),
            "order", None, Decimal("5"), Decimal("3"),
            actor_id=test_actor_id,
        )

        assert second.sequence > first.sequence
        assert second.movement_type == MovementType.SALE

    def test_arithmetic_mismatch_rejected(self, ledger, make_item, location_id, test_actor_id):
        item = make_item()

        with pytest.raises(ValidationFailureError, match="mismatch"):
            ledger.record(
                item.id, location_id, MovementType.ADJUSTMENT, Decimal("5"),
                ReferenceType.ADJUSTMENT, None, Decimal("0"), Decimal("4"),
                actor_id=test_actor_id,
            )

    def test_unknown_movement_type_rejected(self, ledger, make_item, location_id, test_actor_id):
        item = make_item()

        with pytest.raises(ValidationFailureError) as exc_info:
            ledger.record(
                item.id, location_id, "theft", Decimal("1"),
                ReferenceType.ADJUSTMENT, None, Decimal("0"), Decimal("1"),
                actor_id=test_actor_id,
            )
        assert exc_info.value.field == "movement_type"

    def test_timestamp_comes_from_clock(
        self, session, ledger, make_item, location_id, test_actor_id, deterministic_clock,
    ):
        item = make_item()
        record = ledger.record(
            item.id, location_id, MovementType.ADJUSTMENT, Decimal("1"),
            ReferenceType.ADJUSTMENT, None, Decimal("0"), Decimal("1"),
            actor_id=test_actor_id,
        )

        assert record.created_at == deterministic_clock.now()


class TestReconciliation:
    """Replaying the ledger reproduces every balance."""

    def test_replay_matches_available_for_every_pair(
        self, session, stock_store, movements, make_item, put_stock,
        location_id, other_location_id, test_actor_id,
    ):
        flour, sugar = make_item("Flour"), make_item("Sugar")
        put_stock(location_id, flour.id, "10")
        put_stock(other_location_id, flour.id, "4")

        steps = [
            (location_id, flour.id, "3", StockOperation.SUBTRACT),
            (location_id, sugar.id, "8", StockOperation.ADD),
            (other_location_id, flour.id, "20", StockOperation.SUBTRACT),
            (location_id, flour.id, "2.5", StockOperation.ADD),
            (location_id, sugar.id, "6", StockOperation.SET),
        ]
        for loc, item_id, quantity, operation in steps:
            stock_store.adjust(
                loc, item_id, Decimal(quantity), operation,
                actor_id=test_actor_id, create_missing=True,
            )
        session.commit()

        for loc, item_id in [
            (location_id, flour.id),
            (location_id, sugar.id),
            (other_location_id, flour.id),
        ]:
            balance = stock_store.get(loc, item_id).available_quantity
            assert movements.replay_balance(item_id, loc) == balance

        assert stock_store.get(location_id, flour.id).available_quantity == Decimal("9.5")
        assert stock_store.get(other_location_id, flour.id).available_quantity == Decimal("0")


class TestSelector:

    def test_by_reference_finds_document_movements(
        self, session, stock_store, movements, make_item, location_id, test_actor_id,
    ):
        from uuid import uuid4

        item = make_item()
        grn_id = uuid4()
        stock_store.adjust(
            location_id, item.id, Decimal("4"), StockOperation.ADD,
            actor_id=test_actor_id,
            movement_type=MovementType.PURCHASE,
            reference_type=ReferenceType.GRN,
            reference_id=grn_id,
            create_missing=True,
        )

        found = movements.by_reference(ReferenceType.GRN, grn_id)

        assert len(found) == 1
        assert found[0].reference_id == grn_id

    def test_by_location_newest_first(
        self, stock_store, movements, make_item, put_stock, location_id, test_actor_id,
    ):
        item = make_item()
        put_stock(location_id, item.id, "1")
        stock_store.adjust(
            location_id, item.id, Decimal("1"), StockOperation.ADD, actor_id=test_actor_id,
        )

        listed = movements.by_location(location_id)

        assert [m.sequence for m in listed] == sorted(
            (m.sequence for m in listed), reverse=True,
        )

    def test_summary_totals_and_breakdown(
        self, session, stock_store, movements, make_item, put_stock,
        location_id, test_actor_id,
    ):
        item = make_item()
        put_stock(location_id, item.id, "10")

        for movement_type, operation, quantity in [
            (MovementType.PURCHASE, StockOperation.ADD, "5"),
            (MovementType.PURCHASE, StockOperation.ADD, "1"),
            (MovementType.SALE, StockOperation.SUBTRACT, "3"),
            (MovementType.TRANSFER_OUT, StockOperation.SUBTRACT, "2"),
            (MovementType.TRANSFER_IN, StockOperation.ADD, "4"),
        ]:
            stock_store.adjust(
                location_id, item.id, Decimal(quantity), operation,
                actor_id=test_actor_id, movement_type=movement_type,
            )
        session.commit()

        summary = movements.summary(location_id=location_id)

        assert summary.total_movements == 6
        assert summary.total_in == Decimal("10")
        assert summary.total_out == Decimal("5")
        assert summary.net_movement == Decimal("5")
        assert [t.movement_type for t in summary.by_movement_type] == [
            MovementType.PURCHASE,
            MovementType.ADJUSTMENT,
            MovementType.SALE,
            MovementType.TRANSFER_IN,
            MovementType.TRANSFER_OUT,
        ]
        assert summary.by_movement_type[0].count == 2

    def test_summary_date_filter(
        self, session, stock_store, movements, make_item, put_stock,
        location_id, test_actor_id, deterministic_clock,
    ):
        item = make_item()
        put_stock(location_id, item.id, "10")
        cutoff = deterministic_clock.now() + timedelta(hours=1)
        deterministic_clock.advance(2 * 3600)
        stock_store.adjust(
            location_id, item.id, Decimal("3"), StockOperation.SUBTRACT,
            actor_id=test_actor_id, movement_type=MovementType.SALE,
        )
        session.commit()

        later = movements.summary(location_id=location_id, date_from=cutoff)
        earlier = movements.summary(location_id=location_id, date_to=cutoff)

        assert later.total_movements == 1
        assert later.total_out == Decimal("3")
        assert earlier.total_movements == 1
        assert earlier.by_movement_type[0].movement_type == MovementType.ADJUSTMENT

    def test_empty_summary(self, movements, location_id):
        summary = movements.summary(location_id=location_id)

        assert summary.total_movements == 0
        assert summary.net_movement == Decimal("0")
        assert summary.by_movement_type == ()


class TestImmutability:

    def _first_movement(self, session, make_item, put_stock, location_id):
        item = make_item()
        put_stock(location_id, item.id, "5")
        return session.execute(
            select(StockMovement).where(StockMovement.item_id == item.id)
        ).scalar_one()

    def test_update_blocked(self, session, make_item, put_stock, location_id):
        movement = self._first_movement(session, make_item, put_stock, location_id)

        movement.notes = "edited"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_blocked(self, session, make_item, put_stock, location_id):
        movement = self._first_movement(session, make_item, put_stock, location_id)

        session.delete(movement)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
