"""
Tests for goods receipt and purchase entries.

A GRN posts its received quantities into the destination location; a
purchase entry closes out the GRN and purchase order behind it; payment
tracking touches neither.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.domain.dtos import MovementType, ReferenceType
from inventory_kernel.exceptions import InvalidTransitionError, ValidationFailureError
from inventory_kernel.selectors.movement_selector import MovementSelector
from inventory_modules.supply_chain import (
    DeliveryLocationInput,
    GRNItemInput,
    GRNStatus,
    PaymentInput,
    PaymentStatus,
    PurchaseEntryItemInput,
    PurchaseOrderItemInput,
    PurchaseOrderStatus,
)
from inventory_modules.supply_chain.models import GRNItemSource

from tests.modules.conftest import TEST_KITCHEN_ID, TEST_WAREHOUSE_ID


@pytest.fixture
def catalog(make_item):
    return make_item("Flour"), make_item("Sugar")


@pytest.fixture
def purchase_order(po_service, catalog, supplier_id, test_actor_id):
    flour, sugar = catalog
    return po_service.create(
        supplier_id,
        [
            PurchaseOrderItemInput(flour.id, Decimal("10"), Decimal("2")),
            PurchaseOrderItemInput(sugar.id, Decimal("5"), Decimal("1")),
        ],
        actor_id=test_actor_id,
        delivery_locations=[DeliveryLocationInput(TEST_WAREHOUSE_ID)],
    )


class TestDirectGRN:

    def test_posts_stock_and_totals(
        self, session, grn_service, catalog, available, test_actor_id,
    ):
        flour, sugar = catalog

        grn = grn_service.create(
            TEST_KITCHEN_ID,
            [
                GRNItemInput(flour.id, Decimal("10"), Decimal("2")),
                GRNItemInput(sugar.id, Decimal("5"), Decimal("1")),
            ],
            actor_id=test_actor_id,
            discount_amount=Decimal("5"),
        )

        assert grn.grn_number == "GRN-20240101-001"
        assert grn.batch_id == "BATCH-20240101-001"
        assert grn.is_direct_grn
        assert grn.subtotal_amount == Decimal("25")
        assert grn.total_amount == Decimal("20")
        assert {line.source for line in grn.lines} == {GRNItemSource.DIRECT}
        assert available(TEST_KITCHEN_ID, flour.id) == Decimal("10")
        assert available(TEST_KITCHEN_ID, sugar.id) == Decimal("5")

        movements = MovementSelector(session).by_reference(ReferenceType.GRN, grn.id)
        assert {m.movement_type for m in movements} == {MovementType.PURCHASE}
        assert {m.item_id: m.unit_cost for m in movements} == {
            flour.id: Decimal("2"),
            sugar.id: Decimal("1"),
        }

    def test_receipt_adds_to_existing_balance(
        self, grn_service, catalog, put_stock, available, test_actor_id,
    ):
        flour, _ = catalog
        put_stock(TEST_KITCHEN_ID, flour.id, "3")

        grn_service.create(
            TEST_KITCHEN_ID, [GRNItemInput(flour.id, Decimal("4"), Decimal("2"))],
            actor_id=test_actor_id,
        )

        assert available(TEST_KITCHEN_ID, flour.id) == Decimal("7")

    def test_rejected_grn_posts_nothing(
        self, session, grn_service, catalog, available, test_actor_id,
    ):
        flour, _ = catalog

        grn = grn_service.create(
            TEST_KITCHEN_ID,
            [GRNItemInput(flour.id, Decimal("10"), Decimal("2"), reject_reason="spoiled")],
            actor_id=test_actor_id,
            status=GRNStatus.REJECTED,
        )

        assert grn.status == GRNStatus.REJECTED
        assert available(TEST_KITCHEN_ID, flour.id) == Decimal("0")
        assert MovementSelector(session).by_reference(ReferenceType.GRN, grn.id) == []

    def test_zero_quantity_line_is_not_posted(
        self, session, grn_service, catalog, test_actor_id,
    ):
        flour, sugar = catalog

        grn = grn_service.create(
            TEST_KITCHEN_ID,
            [
                GRNItemInput(flour.id, Decimal("0"), Decimal("2")),
                GRNItemInput(sugar.id, Decimal("1"), Decimal("1")),
            ],
            actor_id=test_actor_id,
            status=GRNStatus.PARTIAL,
        )

        movements = MovementSelector(session).by_reference(ReferenceType.GRN, grn.id)
        assert [m.item_id for m in movements] == [sugar.id]

    def test_negative_discount_rejected(self, grn_service, catalog, test_actor_id):
        flour, _ = catalog

        with pytest.raises(ValidationFailureError):
            grn_service.create(
                TEST_KITCHEN_ID, [GRNItemInput(flour.id, Decimal("1"), Decimal("1"))],
                actor_id=test_actor_id,
                discount_amount=Decimal("-1"),
            )
        assert grn_service.list() == []


class TestGRNFromPurchaseOrder:

    def test_receives_in_full_by_default(
        self, grn_service, po_service, purchase_order, catalog, available,
        supplier_id, test_actor_id,
    ):
        flour, sugar = catalog

        grn = grn_service.create_from_po(purchase_order.id, actor_id=test_actor_id)

        assert not grn.is_direct_grn
        assert grn.purchase_order_id == purchase_order.id
        assert grn.supplier_id == supplier_id
        assert grn.destination_location_id == TEST_WAREHOUSE_ID
        assert grn.total_amount == purchase_order.total_amount
        assert available(TEST_WAREHOUSE_ID, flour.id) == Decimal("10")
        assert po_service.get(purchase_order.id).status == PurchaseOrderStatus.PARTIALLY_RECEIVED

    def test_overrides_keep_expected_values(
        self, grn_service, purchase_order, catalog, available, test_actor_id,
    ):
        flour, sugar = catalog

        grn = grn_service.create_from_po(
            purchase_order.id,
            actor_id=test_actor_id,
            destination_location_id=TEST_KITCHEN_ID,
            received=[GRNItemInput(flour.id, Decimal("8"), Decimal("2.10"))],
        )

        line = next(line for line in grn.lines if line.item_id == flour.id)
        assert line.quantity_expected == Decimal("10")
        assert line.expected_unit_cost == Decimal("2")
        assert line.quantity_received == Decimal("8")
        assert line.total_cost == Decimal("16.8")
        assert available(TEST_KITCHEN_ID, flour.id) == Decimal("8")
        assert available(TEST_KITCHEN_ID, sugar.id) == Decimal("5")

    def test_override_for_item_not_on_po_rejected(
        self, grn_service, purchase_order, test_actor_id,
    ):
        with pytest.raises(ValidationFailureError, match="is not on purchase order"):
            grn_service.create_from_po(
                purchase_order.id,
                actor_id=test_actor_id,
                received=[GRNItemInput(uuid4(), Decimal("1"), Decimal("1"))],
            )

    def test_cancelled_po_cannot_be_received(
        self, grn_service, po_service, purchase_order, available, catalog, test_actor_id,
    ):
        flour, _ = catalog
        po_service.cancel(purchase_order.id, actor_id=test_actor_id)

        with pytest.raises(InvalidTransitionError):
            grn_service.create_from_po(purchase_order.id, actor_id=test_actor_id)
        assert grn_service.list() == []
        assert available(TEST_WAREHOUSE_ID, flour.id) == Decimal("0")

    def test_second_receipt_keeps_po_partially_received(
        self, grn_service, po_service, purchase_order, test_actor_id,
    ):
        grn_service.create_from_po(purchase_order.id, actor_id=test_actor_id)
        grn_service.create_from_po(purchase_order.id, actor_id=test_actor_id)

        assert po_service.get(purchase_order.id).status == PurchaseOrderStatus.PARTIALLY_RECEIVED
        assert len(grn_service.list(purchase_order_id=purchase_order.id)) == 2


class TestPurchaseEntries:

    def test_from_grn_closes_out_grn_and_po(
        self, grn_service, pe_service, po_service, purchase_order, catalog, available,
        test_actor_id,
    ):
        flour, _ = catalog
        grn = grn_service.create_from_po(
            purchase_order.id, actor_id=test_actor_id, status=GRNStatus.PARTIAL,
        )

        pe = pe_service.create_from_grn(grn.id, actor_id=test_actor_id, invoice_number="INV-7")

        assert pe.pe_number == "PE-20240101-001"
        assert pe.grn_id == grn.id
        assert pe.purchase_order_id == purchase_order.id
        assert not pe.is_direct_pe
        assert pe.total_amount == grn.subtotal_amount
        assert pe.payment_status == PaymentStatus.PENDING
        assert grn_service.get(grn.id).status == GRNStatus.RECEIVED
        assert po_service.get(purchase_order.id).status == PurchaseOrderStatus.COMPLETED
        # the receipt already posted the stock
        assert available(TEST_WAREHOUSE_ID, flour.id) == Decimal("10")

    def test_from_po_is_direct(
        self, pe_service, po_service, purchase_order, supplier_id, test_actor_id,
    ):
        pe = pe_service.create_from_po(purchase_order.id, actor_id=test_actor_id)

        assert pe.is_direct_pe
        assert pe.grn_id is None
        assert pe.supplier_id == supplier_id
        assert pe.total_amount == Decimal("25")
        assert po_service.get(purchase_order.id).status == PurchaseOrderStatus.COMPLETED

    def test_explicit_payload(self, pe_service, catalog, test_actor_id):
        flour, _ = catalog

        pe = pe_service.create(
            [PurchaseEntryItemInput(flour.id, Decimal("3"), Decimal("4"))],
            actor_id=test_actor_id,
            payment=PaymentInput(
                payment_status=PaymentStatus.PARTIAL,
                amount_paid=Decimal("5"),
                payment_method="bank_transfer",
            ),
        )

        assert pe.is_direct_pe
        assert pe.total_amount == Decimal("12")
        assert pe.amount_paid == Decimal("5")
        assert pe.payment_status == PaymentStatus.PARTIAL

    def test_cancelled_po_cannot_be_completed(
        self, pe_service, po_service, purchase_order, test_actor_id,
    ):
        po_service.cancel(purchase_order.id, actor_id=test_actor_id)

        with pytest.raises(InvalidTransitionError):
            pe_service.create_from_po(purchase_order.id, actor_id=test_actor_id)
        assert pe_service.list() == []

    def test_payment_update_leaves_po_and_grn_alone(
        self, grn_service, pe_service, po_service, purchase_order, test_actor_id,
    ):
        grn = grn_service.create_from_po(purchase_order.id, actor_id=test_actor_id)
        pe = pe_service.create_from_grn(grn.id, actor_id=test_actor_id)

        paid = pe_service.update_payment_status(
            pe.id, PaymentStatus.COMPLETED,
            actor_id=test_actor_id,
            amount_paid=Decimal("25"),
            payment_reference="TX-1",
        )

        assert paid.payment_status == PaymentStatus.COMPLETED
        assert paid.amount_paid == Decimal("25")
        assert paid.payment_reference == "TX-1"
        assert po_service.get(purchase_order.id).status == PurchaseOrderStatus.COMPLETED
        assert grn_service.get(grn.id).status == GRNStatus.RECEIVED
        assert [p.id for p in pe_service.list(payment_status=PaymentStatus.COMPLETED)] == [pe.id]

    def test_unknown_payment_status_rejected(self, pe_service, catalog, test_actor_id):
        flour, _ = catalog
        pe = pe_service.create(
            [PurchaseEntryItemInput(flour.id, Decimal("1"), Decimal("1"))],
            actor_id=test_actor_id,
        )

        with pytest.raises(ValidationFailureError):
            pe_service.update_payment_status(pe.id, "refunded", actor_id=test_actor_id)

    def test_failed_entry_leaves_grn_and_po_unchanged(
        self, session, grn_service, pe_service, po_service, purchase_order, test_actor_id,
    ):
        grn = grn_service.create_from_po(
            purchase_order.id, actor_id=test_actor_id, status=GRNStatus.PARTIAL,
        )

        with pytest.raises(ValidationFailureError, match="payment_status"):
            pe_service.create_from_grn(
                grn.id, actor_id=test_actor_id,
                payment=PaymentInput(payment_status="paid"),
            )
        session.commit()

        assert grn_service.get(grn.id).status == GRNStatus.PARTIAL
        assert po_service.get(purchase_order.id).status == PurchaseOrderStatus.PARTIALLY_RECEIVED
        assert pe_service.list() == []

    def test_unknown_status_filter_rejected(self, pe_service):
        with pytest.raises(ValidationFailureError):
            pe_service.list(payment_status="paid")


class TestEntriesAgainstGRNStatus:

    def test_rejected_grn_cannot_back_an_entry(
        self, session, grn_service, pe_service, catalog, available, test_actor_id,
    ):
        flour, _ = catalog
        grn = grn_service.create(
            TEST_KITCHEN_ID,
            [GRNItemInput(flour.id, Decimal("10"), Decimal("2"), reject_reason="spoiled")],
            actor_id=test_actor_id,
            status=GRNStatus.REJECTED,
        )

        with pytest.raises(InvalidTransitionError) as exc_info:
            pe_service.create_from_grn(grn.id, actor_id=test_actor_id)
        assert exc_info.value.from_state == "rejected"

        with pytest.raises(InvalidTransitionError):
            pe_service.create(
                [PurchaseEntryItemInput(flour.id, Decimal("10"), Decimal("2"))],
                actor_id=test_actor_id,
                grn_id=grn.id,
            )

        assert grn_service.get(grn.id).status == GRNStatus.REJECTED
        assert pe_service.list() == []
        assert available(TEST_KITCHEN_ID, flour.id) == Decimal("0")

    def test_partial_grn_entry_does_not_post_again(
        self, session, grn_service, pe_service, catalog, available, test_actor_id,
    ):
        flour, _ = catalog
        grn = grn_service.create(
            TEST_KITCHEN_ID,
            [GRNItemInput(flour.id, Decimal("6"), Decimal("2"), quantity_expected=Decimal("10"))],
            actor_id=test_actor_id,
            status=GRNStatus.PARTIAL,
        )

        pe = pe_service.create_from_grn(grn.id, actor_id=test_actor_id)

        assert grn_service.get(grn.id).status == GRNStatus.RECEIVED
        assert pe.lines[0].quantity == Decimal("6")
        assert available(TEST_KITCHEN_ID, flour.id) == Decimal("6")
        assert len(MovementSelector(session).by_reference(ReferenceType.GRN, grn.id)) == 1


class TestCompletedPurchaseOrder:

    def test_each_grn_may_carry_an_entry(
        self, grn_service, pe_service, po_service, purchase_order, test_actor_id,
    ):
        first = grn_service.create_from_po(purchase_order.id, actor_id=test_actor_id)
        second = grn_service.create_from_po(purchase_order.id, actor_id=test_actor_id)

        pe_service.create_from_grn(first.id, actor_id=test_actor_id)
        pe_service.create_from_grn(second.id, actor_id=test_actor_id)

        assert po_service.get(purchase_order.id).status == PurchaseOrderStatus.COMPLETED
        assert len(pe_service.list(purchase_order_id=purchase_order.id)) == 2

    def test_direct_entry_against_completed_po_rejected(
        self, pe_service, po_service, purchase_order, catalog, test_actor_id,
    ):
        flour, _ = catalog
        pe_service.create_from_po(purchase_order.id, actor_id=test_actor_id)

        with pytest.raises(InvalidTransitionError) as exc_info:
            pe_service.create_from_po(purchase_order.id, actor_id=test_actor_id)
        assert exc_info.value.guard == "has_receipt"

        with pytest.raises(InvalidTransitionError):
            pe_service.create(
                [PurchaseEntryItemInput(flour.id, Decimal("1"), Decimal("2"))],
                actor_id=test_actor_id,
                purchase_order_id=purchase_order.id,
            )

        assert len(pe_service.list(purchase_order_id=purchase_order.id)) == 1

    def test_grn_against_completed_po_rejected(
        self, grn_service, pe_service, purchase_order, test_actor_id,
    ):
        pe_service.create_from_po(purchase_order.id, actor_id=test_actor_id)

        with pytest.raises(InvalidTransitionError) as exc_info:
            grn_service.create_from_po(purchase_order.id, actor_id=test_actor_id)
        assert exc_info.value.from_state == "completed"
        assert grn_service.list() == []
