"""
Bulk Loader

Imports catalog, customer and historical order data in dependency order:

    categories -> authors -> products -> customers -> orders -> order_line_items

Rows are inserted parents-first inside a single transaction, so referential
checks stay on for the whole load. Imported line items go through the same
history projector as live orders, and imported order totals are recomputed
from their line items.
"""

import time
from collections import defaultdict
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import polars as pl
import structlog
from pydantic import BaseModel, Field
from sqlalchemy import insert, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bookshop.catalog.categories import order_categories
from bookshop.database.models import (
    SKU_LENGTH,
    Author,
    Category,
    Customer,
    Order,
    OrderLineItem,
    Product,
)
from bookshop.exceptions import ValidationError
from bookshop.ordering.history import project_line_item

logger = structlog.get_logger(__name__)

LOAD_ORDER = (
    "categories",
    "authors",
    "products",
    "customers",
    "orders",
    "order_line_items",
)

# Tables whose integer ids come from a sequence on PostgreSQL
SEQUENCED_TABLES = ("categories", "authors", "customers", "orders", "order_line_items", "sales_history")

# SKUs keep their leading zeros
TEXT_COLUMNS = {
    "products": {"id": pl.Utf8},
    "order_line_items": {"product_id": pl.Utf8},
}


class LoadReport(BaseModel):
    """Result of a bulk load"""
    rows_loaded: Dict[str, int] = Field(default_factory=dict)
    history_records: int = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    load_duration_seconds: float = 0


def _money(value: Any, column: str) -> Decimal:
    if value is None:
        raise ValidationError(f"Column {column!r} cannot be empty")
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except InvalidOperation as e:
        raise ValidationError(f"Column {column!r} has a malformed amount {value!r}") from e


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _parse_timestamps(df: pl.DataFrame, column: str) -> pl.DataFrame:
    if column not in df.columns or df[column].dtype != pl.Utf8:
        return df
    try:
        return df.with_columns(pl.col(column).str.strptime(pl.Datetime, strict=True))
    except (pl.exceptions.ComputeError, pl.exceptions.InvalidOperationError) as e:
        raise ValidationError(f"Column {column!r} has malformed timestamps") from e


def _require_columns(df: pl.DataFrame, table: str, columns: List[str]) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValidationError(f"{table}: missing columns {missing}")


class BulkLoader:
    """
    Dependency-ordered importer.

    Example:
        loader = BulkLoader(get_session_factory())
        report = await loader.load_directory("data/generated")
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], chunk_size: int = 1000):
        self._session_factory = session_factory
        self.chunk_size = chunk_size

    async def load_directory(self, directory: Union[str, Path]) -> LoadReport:
        """Load every ``<table>.csv`` present in ``directory``."""
        directory = Path(directory)
        frames = {}
        for table in LOAD_ORDER:
            path = directory / f"{table}.csv"
            if path.exists():
                frames[table] = pl.read_csv(path, schema_overrides=TEXT_COLUMNS.get(table))
                logger.info("Read bulk file", table=table, path=str(path), rows=len(frames[table]))

        if not frames:
            raise ValidationError(f"No loadable CSV files found in {directory}")
        return await self.load(frames)

    async def load(self, frames: Mapping[str, pl.DataFrame]) -> LoadReport:
        """
        Load DataFrames keyed by table name in one transaction.

        Raises:
            ValidationError: Unknown tables, malformed rows, or order totals
                that disagree with their line items
        """
        unknown = set(frames) - set(LOAD_ORDER)
        if unknown:
            raise ValidationError(f"Unknown tables in bulk load: {sorted(unknown)}")

        report = LoadReport(started_at=datetime.now())
        start = time.perf_counter()

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    for table in LOAD_ORDER:
                        if table not in frames:
                            continue
                        loader = getattr(self, f"_load_{table}")
                        count = await loader(session, frames[table])
                        report.rows_loaded[table] = count
                        logger.info("Bulk loaded table", table=table, rows=count)

                    report.history_records = report.rows_loaded.get("order_line_items", 0)
                    if "orders" in frames or "order_line_items" in frames:
                        await self._finalize_order_totals(session, frames)

                    await self._sync_sequences(session)
        except IntegrityError as e:
            logger.error("Bulk load rolled back", error=str(e.orig))
            raise ValidationError(f"Bulk load violates referential integrity: {e.orig}") from e

        report.completed_at = datetime.now()
        report.load_duration_seconds = round(time.perf_counter() - start, 3)
        logger.info(
            "Bulk load completed",
            rows_loaded=report.rows_loaded,
            duration_seconds=report.load_duration_seconds,
        )
        return report

    async def _insert_chunked(self, session: AsyncSession, model: Any, records: List[Dict[str, Any]]) -> int:
        for i in range(0, len(records), self.chunk_size):
            await session.execute(insert(model), records[i:i + self.chunk_size])
        return len(records)

    # -------------------------------------------------------------------------
    # Catalog and customers
    # -------------------------------------------------------------------------

    async def _load_categories(self, session: AsyncSession, df: pl.DataFrame) -> int:
        _require_columns(df, "categories", ["id", "name"])
        existing = (await session.execute(select(Category.id))).scalars().all()
        rows = order_categories(df.to_dicts(), existing_ids=existing)

        records = [
            {
                "id": row["id"],
                "parent_id": row.get("parent_id"),
                "name": row["name"],
                "name_fr": _text(row.get("name_fr")),
                "description": _text(row.get("description")),
                "description_fr": _text(row.get("description_fr")),
            }
            for row in rows
        ]
        return await self._insert_chunked(session, Category, records)

    async def _load_authors(self, session: AsyncSession, df: pl.DataFrame) -> int:
        _require_columns(df, "authors", ["id", "name"])
        records = [{"id": row["id"], "name": row["name"]} for row in df.to_dicts()]
        return await self._insert_chunked(session, Author, records)

    async def _load_products(self, session: AsyncSession, df: pl.DataFrame) -> int:
        _require_columns(df, "products", ["id", "category_id", "author_id", "name", "price", "sale_price"])

        records = []
        for row in df.to_dicts():
            sku = _text(row["id"])
            if len(sku) != SKU_LENGTH:
                raise ValidationError(f"Product SKU must be exactly {SKU_LENGTH} characters, got {sku!r}")
            stock = int(row.get("stock") or 0)
            on_hand = int(row.get("on_hand") or 0)
            if stock < 0 or on_hand < 0:
                raise ValidationError(f"Product {sku}: stock quantities cannot be negative")

            records.append({
                "id": sku,
                "category_id": row["category_id"],
                "author_id": row["author_id"],
                "name": row["name"],
                "name_fr": _text(row.get("name_fr")),
                "description": _text(row.get("description")),
                "description_fr": _text(row.get("description_fr")),
                "long_description": _text(row.get("long_description")),
                "long_description_fr": _text(row.get("long_description_fr")),
                "price": _money(row["price"], "price"),
                "sale_price": _money(row["sale_price"], "sale_price"),
                "discount": _money(row.get("discount") or 0, "discount"),
                "shipping_cost": _money(row.get("shipping_cost") or 0, "shipping_cost"),
                "on_hand": on_hand,
                "stock": stock,
            })
        return await self._insert_chunked(session, Product, records)

    async def _load_customers(self, session: AsyncSession, df: pl.DataFrame) -> int:
        _require_columns(df, "customers", ["id", "first_name", "last_name", "email", "password_hash"])
        records = [
            {
                "id": row["id"],
                "first_name": row["first_name"],
                "last_name": row["last_name"],
                "email": row["email"],
                "password_hash": row["password_hash"],
            }
            for row in df.to_dicts()
        ]
        return await self._insert_chunked(session, Customer, records)

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    async def _load_orders(self, session: AsyncSession, df: pl.DataFrame) -> int:
        _require_columns(df, "orders", ["id", "customer_id", "created_at"])
        df = _parse_timestamps(df, "created_at")

        # Totals are recomputed once line items are in
        records = [
            {
                "id": row["id"],
                "customer_id": row["customer_id"],
                "created_at": row["created_at"],
                "total_amount": Decimal("0.00"),
            }
            for row in df.to_dicts()
        ]
        return await self._insert_chunked(session, Order, records)

    async def _load_order_line_items(self, session: AsyncSession, df: pl.DataFrame) -> int:
        _require_columns(df, "order_line_items", ["order_id", "product_id", "quantity", "unit_price"])

        count = 0
        for row in df.to_dicts():
            quantity = row["quantity"]
            if quantity is None or int(quantity) <= 0:
                raise ValidationError(
                    f"Line item for order {row['order_id']} / {row['product_id']} needs a positive quantity"
                )
            line_item = OrderLineItem(
                order_id=row["order_id"],
                product_id=_text(row["product_id"]),
                quantity=int(quantity),
                unit_price=_money(row["unit_price"], "unit_price"),
            )
            if row.get("id") is not None:
                line_item.id = row["id"]
            session.add(line_item)
            await session.flush()
            await project_line_item(session, line_item)
            count += 1
        return count

    async def _finalize_order_totals(self, session: AsyncSession, frames: Mapping[str, pl.DataFrame]) -> None:
        """
        Recompute ``total_amount`` from stored line items for every order the
        load touched, including existing orders that only received new items.
        """
        orders = frames["orders"].to_dicts() if "orders" in frames else []
        line_items = frames["order_line_items"].to_dicts() if "order_line_items" in frames else []

        supplied = {row["id"]: row.get("total_amount") for row in orders}
        order_ids = list(dict.fromkeys([*supplied, *(row["order_id"] for row in line_items)]))

        totals: Dict[Any, Decimal] = defaultdict(lambda: Decimal("0.00"))
        for i in range(0, len(order_ids), self.chunk_size):
            result = await session.execute(
                select(OrderLineItem.order_id, OrderLineItem.quantity, OrderLineItem.unit_price)
                .where(OrderLineItem.order_id.in_(order_ids[i:i + self.chunk_size]))
            )
            for order_id, quantity, unit_price in result.all():
                totals[order_id] += quantity * unit_price

        for order_id in order_ids:
            if order_id not in totals:
                raise ValidationError(f"Order {order_id} has no line items")
            computed = totals[order_id].quantize(Decimal("0.01"))

            given = supplied.get(order_id)
            if given is not None and _money(given, "total_amount") != computed:
                raise ValidationError(
                    f"Order {order_id}: total_amount {given} does not match line items ({computed})"
                )

            await session.execute(
                update(Order)
                .where(Order.id == order_id)
                .values(total_amount=computed)
                .execution_options(synchronize_session=False)
            )

    async def _sync_sequences(self, session: AsyncSession) -> None:
        connection = await session.connection()
        if connection.dialect.name != "postgresql":
            return
        for table in SEQUENCED_TABLES:
            await session.execute(text(
                f"SELECT setval(pg_get_serial_sequence('{table}', 'id'), "
                f"COALESCE((SELECT MAX(id) FROM {table}), 0) + 1, false)"
            ))


async def main(directory: str, create_tables: bool = False) -> None:
    from bookshop.config.logging import configure_logging
    from bookshop.database.connection import (
        close_database,
        create_schema,
        get_session_factory,
        init_database,
    )

    configure_logging()
    engine = await init_database()
    try:
        if create_tables:
            await create_schema(engine)
        await BulkLoader(get_session_factory()).load_directory(directory)
    finally:
        await close_database()


def cli() -> None:
    import argparse
    import asyncio

    parser = argparse.ArgumentParser(description="Bulk-load bookshop CSV files in dependency order")
    parser.add_argument("directory", help="Directory holding <table>.csv files")
    parser.add_argument("--create-tables", action="store_true", help="Create missing tables first")
    args = parser.parse_args()

    asyncio.run(main(args.directory, args.create_tables))


if __name__ == "__main__":
    cli()
