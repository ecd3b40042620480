"""
Test Suite Configuration
"""
from decimal import Decimal
from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
import polars as pl
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bookshop.database.connection import build_engine, build_session_factory, create_schema
from bookshop.database.models import Author, Category, Customer, Product
from bookshop.ordering import OrderTransactionManager


@pytest.fixture
async def test_engine(tmp_path):
    """File-backed SQLite engine so concurrent sessions see each other's commits"""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'bookshop.db'}")
    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Read session for assertions"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def manager(session_factory) -> OrderTransactionManager:
    return OrderTransactionManager(session_factory, retry_backoff_ms=10)


@pytest.fixture
async def catalog(session_factory) -> SimpleNamespace:
    """
    Small bookshop catalog:

    Fiction (1) > Mystery (2), History (3)
    Christie (1), Conan Doyle (2), Beard (3)
    """
    async with session_factory() as session:
        async with session.begin():
            session.add_all([
                Category(id=1, name="Fiction", name_fr="Romans"),
                Category(id=3, name="History", name_fr="Histoire"),
            ])
            await session.flush()
            session.add(Category(id=2, parent_id=1, name="Mystery", name_fr="Policier"))

            session.add_all([
                Author(id=1, name="Agatha Christie"),
                Author(id=2, name="Arthur Conan Doyle"),
                Author(id=3, name="Mary Beard"),
            ])
            await session.flush()

            session.add_all([
                Product(
                    id="MYS0000001", category_id=2, author_id=1,
                    name="Murder on the Orient Express", name_fr="Le Crime de l'Orient-Express",
                    description="A detective story aboard a snowbound train",
                    price=Decimal("55.00"), sale_price=Decimal("50.00"), on_hand=50, stock=50,
                ),
                Product(
                    id="MYS0000002", category_id=2, author_id=1,
                    name="And Then There Were None", name_fr="Dix Petits Negres",
                    price=Decimal("10.00"), sale_price=Decimal("10.00"), on_hand=20, stock=20,
                ),
                Product(
                    id="MYS0000003", category_id=2, author_id=2,
                    name="The Hound of the Baskervilles", name_fr="Le Chien des Baskerville",
                    price=Decimal("12.50"), sale_price=Decimal("12.50"), on_hand=5, stock=5,
                ),
                Product(
                    id="HIS0000001", category_id=3, author_id=3,
                    name="SPQR", description_fr="Une histoire de la Rome antique",
                    price=Decimal("30.00"), sale_price=Decimal("30.00"), on_hand=5, stock=5,
                ),
                Product(
                    id="HIS0000002", category_id=3, author_id=3,
                    name="Women & Power", long_description="A manifesto on 100% of the classics",
                    price=Decimal("15.00"), sale_price=Decimal("15.00"), on_hand=1, stock=1,
                ),
                Product(
                    id="HIS0000003", category_id=3, author_id=3,
                    name="Pompeii",
                    price=Decimal("45.00"), sale_price=Decimal("40.25"), on_hand=10, stock=10,
                ),
                Product(
                    id="FIC0000001", category_id=1, author_id=2,
                    name="A Study in Scarlet",
                    price=Decimal("9.99"), sale_price=Decimal("9.99"), on_hand=3, stock=3,
                ),
            ])
            session.add_all([
                Customer(id=1, first_name="Ada", last_name="Lovelace", email="ada@example.com", password_hash="x" * 64),
                Customer(id=2, first_name="Alan", last_name="Turing", email="alan@example.com", password_hash="y" * 64),
                Customer(id=3, first_name="Grace", last_name="Hopper", email="grace@example.com", password_hash="z" * 64),
            ])

    return SimpleNamespace(
        orient="MYS0000001",
        then_none="MYS0000002",
        hound="MYS0000003",
        spqr="HIS0000001",
        women_power="HIS0000002",
        pompeii="HIS0000003",
        scarlet="FIC0000001",
        ada=1,
        alan=2,
        grace=3,
    )


@pytest.fixture
async def cheap_books(session_factory, catalog) -> SimpleNamespace:
    """Pamphlets priced in cents whose sums are not exact in binary floating point"""
    async with session_factory() as session:
        async with session.begin():
            session.add_all([
                Product(
                    id="PAM0000001", category_id=3, author_id=3, name="Thirty Cent Pamphlet",
                    price=Decimal("0.30"), sale_price=Decimal("0.30"), on_hand=10, stock=10,
                ),
                Product(
                    id="PAM0000002", category_id=3, author_id=3, name="Dime Pamphlet",
                    price=Decimal("0.10"), sale_price=Decimal("0.10"), on_hand=10, stock=10,
                ),
            ])

    return SimpleNamespace(thirty="PAM0000001", dime="PAM0000002")


@pytest.fixture
def rows(session_factory):
    """Row-count helper bound to the test database"""
    async def _count(model) -> int:
        async with session_factory() as session:
            return (await session.execute(select(func.count()).select_from(model))).scalar_one()
    return _count


@pytest.fixture
def stock(session_factory):
    """Current stock of a product"""
    async def _stock(product_id: str) -> int:
        async with session_factory() as session:
            return (await session.execute(select(Product.stock).where(Product.id == product_id))).scalar_one()
    return _stock


@pytest.fixture
def bulk_frames() -> dict:
    """A complete, consistent bulk-load set; categories deliberately child-first"""
    return {
        "categories": pl.DataFrame({
            "id": [11, 10],
            "parent_id": [10, None],
            "name": ["Poetry", "Literature"],
            "name_fr": ["Poesie", "Litterature"],
        }),
        "authors": pl.DataFrame({
            "id": [7],
            "name": ["Emily Dickinson"],
        }),
        "products": pl.DataFrame({
            "id": ["0000000001", "0000000002"],
            "category_id": [11, 11],
            "author_id": [7, 7],
            "name": ["Collected Poems", "Letters"],
            "price": [20.0, 12.0],
            "sale_price": [18.5, 12.0],
            "stock": [4, 9],
        }),
        "customers": pl.DataFrame({
            "id": [5],
            "first_name": ["Sylvia"],
            "last_name": ["Plath"],
            "email": ["sylvia@example.com"],
            "password_hash": ["h" * 64],
        }),
        "orders": pl.DataFrame({
            "id": [100, 101],
            "customer_id": [5, 5],
            "created_at": ["2025-11-03 10:00:00", "2025-11-20 16:45:00"],
            "total_amount": [49.0, 18.5],
        }),
        "order_line_items": pl.DataFrame({
            "order_id": [100, 100, 101],
            "product_id": ["0000000001", "0000000002", "0000000001"],
            "quantity": [2, 1, 1],
            "unit_price": [18.5, 12.0, 18.5],
        }),
    }
