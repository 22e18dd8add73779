"""Tests for session_scope and engine lifecycle guards."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from inventory_kernel.db.engine import get_session_factory, reset_engine, session_scope
from inventory_kernel.models.item import Item


def _item(actor_id, name):
    return Item(
        name=name,
        sku=f"SKU-{name}",
        unit="kg",
        stock_quantity=Decimal("0"),
        min_stock=Decimal("0"),
        status="active",
        created_by_id=actor_id,
    )


class TestSessionScope:

    def test_commits_on_success(self, engine, session, test_actor_id):
        with session_scope() as scoped:
            scoped.add(_item(test_actor_id, "committed"))

        names = session.execute(select(Item.name)).scalars().all()
        assert names == ["committed"]

    def test_rolls_back_and_reraises(self, engine, session, test_actor_id):
        with pytest.raises(ZeroDivisionError):
            with session_scope() as scoped:
                scoped.add(_item(test_actor_id, "discarded"))
                scoped.flush()
                1 / 0

        assert session.execute(select(Item)).first() is None


class TestEngineLifecycle:

    def test_factory_requires_init(self):
        reset_engine()

        with pytest.raises(RuntimeError, match="not initialized"):
            get_session_factory()
