"""
Unit Tests - Sales History
"""
from decimal import Decimal

import pytest
from sqlalchemy import select

from bookshop.database.models import Customer, OrderLineItem, Product, SalesHistoryRecord
from bookshop.exceptions import HistoryProjectionError, ValidationError
from bookshop.ordering.history import history_for_order, project_line_item


class TestHistorySnapshots:
    """History rows keep what was true when the order was placed"""

    async def test_snapshot_survives_source_edits(self, manager, catalog, session_factory):
        receipt = await manager.create_order(catalog.ada, [(catalog.orient, 1), (catalog.hound, 2)])

        async with session_factory() as session:
            async with session.begin():
                customer = await session.get(Customer, catalog.ada)
                customer.last_name = "King"
                product = await session.get(Product, catalog.orient)
                product.name = "Orient Express (Revised)"
                product.sale_price = Decimal("75.00")

        async with session_factory() as session:
            history = await history_for_order(session, receipt.order_id)

        assert [h.product_id for h in history] == [catalog.orient, catalog.hound]
        assert history[0].customer_name == "Ada Lovelace"
        assert history[0].product_name == "Murder on the Orient Express"
        assert history[0].unit_price == Decimal("50.00")
        assert history[1].quantity == 2
        assert all(h.ordered_at == receipt.created_at for h in history)

    async def test_every_line_item_has_one_record(self, manager, catalog, test_db):
        await manager.create_order(catalog.ada, [(catalog.orient, 1), (catalog.then_none, 1)])
        await manager.create_order(catalog.alan, [(catalog.spqr, 1)])

        line_ids = set((await test_db.execute(select(OrderLineItem.id))).scalars().all())
        history_line_ids = (await test_db.execute(select(SalesHistoryRecord.line_item_id))).scalars().all()

        assert sorted(history_line_ids) == sorted(line_ids)

    async def test_history_for_unknown_order_is_empty(self, test_db):
        assert await history_for_order(test_db, 12345) == []


class TestAppendOnly:
    """History records refuse updates and deletes"""

    async def test_update_is_refused(self, manager, catalog, session_factory):
        receipt = await manager.create_order(catalog.ada, [(catalog.orient, 1)])

        async with session_factory() as session:
            record = (await history_for_order(session, receipt.order_id))[0]
            record.product_name = "Tampered"
            with pytest.raises(ValidationError):
                await session.flush()

    async def test_delete_is_refused(self, manager, catalog, session_factory):
        receipt = await manager.create_order(catalog.ada, [(catalog.orient, 1)])

        async with session_factory() as session:
            record = (await history_for_order(session, receipt.order_id))[0]
            await session.delete(record)
            with pytest.raises(ValidationError):
                await session.flush()


class TestProjector:
    """Tests for project_line_item"""

    async def test_requires_flushed_line_item(self, test_db):
        line_item = OrderLineItem(order_id=1, product_id="MYS0000001", quantity=1, unit_price=Decimal("1.00"))
        with pytest.raises(HistoryProjectionError):
            await project_line_item(test_db, line_item)

    async def test_missing_join_row(self, test_db):
        line_item = OrderLineItem(id=999, order_id=1, product_id="MYS0000001", quantity=1, unit_price=Decimal("1.00"))
        with pytest.raises(HistoryProjectionError):
            await project_line_item(test_db, line_item)
