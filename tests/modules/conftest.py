"""
Shared fixtures for module tests.

Provides the supply-chain services, deterministic supplier / location ids,
and a factory for pending requisitions.

DESIGN RULE: Every fixture is opt-in.  No autouse.  Each test explicitly
declares what it depends on in its function signature.
"""

from decimal import Decimal
from uuid import UUID

import pytest

from inventory_modules.supply_chain import (
    GRNService,
    PurchaseEntryService,
    PurchaseOrderService,
    RequisitionItemInput,
    RequisitionService,
    StockTransferService,
)

# ---------------------------------------------------------------------------
# Deterministic ids for entities this codebase does not own
# ---------------------------------------------------------------------------

TEST_SUPPLIER_ID = UUID("00000000-0000-4000-a000-000000000001")
TEST_WAREHOUSE_ID = UUID("00000000-0000-4000-a000-000000000010")
TEST_KITCHEN_ID = UUID("00000000-0000-4000-a000-000000000011")
TEST_OUTLET_ID = UUID("00000000-0000-4000-a000-000000000012")


@pytest.fixture
def supplier_id() -> UUID:
    return TEST_SUPPLIER_ID


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture
def requisition_service(session, deterministic_clock):
    return RequisitionService(session, deterministic_clock)


@pytest.fixture
def po_service(session, deterministic_clock):
    return PurchaseOrderService(session, deterministic_clock)


@pytest.fixture
def grn_service(session, deterministic_clock):
    return GRNService(session, deterministic_clock)


@pytest.fixture
def pe_service(session, deterministic_clock):
    return PurchaseEntryService(session, deterministic_clock)


@pytest.fixture
def transfer_service(session, deterministic_clock):
    return StockTransferService(session, deterministic_clock)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@pytest.fixture
def make_requisition(requisition_service, test_actor_id):
    """Factory: a pending requisition from ``source`` to ``delivery``."""

    def _make(item_quantities, source=TEST_WAREHOUSE_ID, delivery=TEST_KITCHEN_ID, **kwargs):
        return requisition_service.create(
            source,
            delivery,
            [
                RequisitionItemInput(item_id=item.id, quantity_expected=Decimal(qty))
                for item, qty in item_quantities
            ],
            actor_id=test_actor_id,
            **kwargs,
        )

    return _make
