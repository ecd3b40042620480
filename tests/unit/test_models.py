"""
Unit Tests - Database Models
"""
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from bookshop.database.models import Category, Customer, OrderLineItem, Product
from bookshop.exceptions import ValidationError


class TestProduct:
    """Tests for Product validation"""

    @pytest.mark.parametrize("sku", ["SHORT", "ELEVENCHARS", "", None])
    def test_sku_must_be_ten_characters(self, sku):
        with pytest.raises(ValidationError):
            Product(id=sku, name="Bad", price=Decimal("1.00"), sale_price=Decimal("1.00"))

    def test_valid_sku(self):
        product = Product(id="0000000042", name="Fine", price=Decimal("1.00"), sale_price=Decimal("1.00"))
        assert product.id == "0000000042"

    @pytest.mark.parametrize("field", ["stock", "on_hand"])
    def test_negative_quantities_rejected(self, field):
        product = Product(id="0000000042", name="Fine", price=Decimal("1.00"), sale_price=Decimal("1.00"))
        with pytest.raises(ValidationError):
            setattr(product, field, -1)

    async def test_text_fields_default_to_empty(self, catalog, test_db):
        product = await test_db.get(Product, catalog.pompeii)
        assert product.description == ""
        assert product.long_description_fr == ""


class TestCustomer:
    """Tests for Customer"""

    def test_full_name(self):
        customer = Customer(first_name="Ada", last_name="Lovelace", email="ada@example.com", password_hash="s")
        assert customer.full_name == "Ada Lovelace"

    def test_repr_hides_secret(self):
        customer = Customer(id=1, first_name="Ada", last_name="Lovelace", email="ada@example.com", password_hash="secret")
        assert "secret" not in repr(customer)

    async def test_email_is_unique(self, catalog, session_factory):
        async with session_factory() as session:
            session.add(Customer(first_name="Other", last_name="Ada", email="ada@example.com", password_hash="s"))
            with pytest.raises(IntegrityError):
                await session.commit()


class TestCategory:
    """Tests for Category constraints"""

    async def test_unknown_parent_rejected_by_foreign_key(self, session_factory):
        async with session_factory() as session:
            session.add(Category(id=50, parent_id=404, name="Orphan"))
            with pytest.raises(IntegrityError):
                await session.commit()

    async def test_children_relationship(self, catalog, test_db):
        fiction = (await test_db.execute(
            select(Category).options(selectinload(Category.children)).where(Category.id == 1)
        )).scalar_one()
        assert [c.name for c in fiction.children] == ["Mystery"]
        assert fiction.parent_id is None


def test_line_total():
    line_item = OrderLineItem(quantity=3, unit_price=Decimal("12.50"))
    assert line_item.line_total == Decimal("37.50")
