"""
Database Models - Transactional Order Schema

Catalog Store:
- Category: bilingual category tree (nullable self-referencing parent)
- Author: product authors
- Product: SKU-keyed catalog entries with pricing and stock

Customer Store:
- Customer: identity and credential secret

Write path:
- Order / OrderLineItem: created atomically by the order transaction manager

History:
- SalesHistoryRecord: append-only denormalized snapshot, one per line item
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, validates

from bookshop.exceptions import ValidationError

SKU_LENGTH = 10


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores UTC without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# CATALOG STORE
# =============================================================================

class Category(Base):
    """
    Category Tree Node

    Root categories have no parent. Acyclicity is enforced by
    ``bookshop.catalog.categories`` before inserts and moves.
    """
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    parent_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("categories.id"), nullable=True
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    name_fr: Mapped[str] = mapped_column(String(100), nullable=False, default="", server_default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    description_fr: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")

    parent: Mapped[Optional["Category"]] = relationship(
        back_populates="children", remote_side=[id]
    )
    children: Mapped[List["Category"]] = relationship(back_populates="parent")
    products: Mapped[List["Product"]] = relationship(back_populates="category")

    __table_args__ = (
        CheckConstraint("parent_id IS NULL OR parent_id <> id", name="ck_categories_not_own_parent"),
        Index("ix_categories_parent", "parent_id"),
    )


class Author(Base):
    """Author reference data"""
    __tablename__ = "authors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False)

    products: Mapped[List["Product"]] = relationship(back_populates="author")


class Product(Base):
    """
    Product Catalog Entry

    Keyed by a fixed-length SKU. ``sale_price`` is what orders capture;
    ``stock`` is what orders decrement.
    """
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(SKU_LENGTH), primary_key=True)
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("categories.id"), nullable=False
    )
    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("authors.id"), nullable=False
    )

    # Searchable text, never NULL
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    name_fr: Mapped[str] = mapped_column(String(200), nullable=False, default="", server_default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    description_fr: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    long_description: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    long_description_fr: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")

    # Pricing
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    sale_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))

    # Inventory
    on_hand: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    stock: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)

    category: Mapped["Category"] = relationship(back_populates="products")
    author: Mapped["Author"] = relationship(back_populates="products")

    __table_args__ = (
        CheckConstraint(f"length(id) = {SKU_LENGTH}", name="ck_products_sku_length"),
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("on_hand >= 0", name="ck_products_on_hand_non_negative"),
        Index("ix_products_category", "category_id"),
        Index("ix_products_author", "author_id"),
    )

    @validates("id")
    def _validate_sku(self, key: str, value: str) -> str:
        if value is None or len(value) != SKU_LENGTH:
            raise ValidationError(f"Product SKU must be exactly {SKU_LENGTH} characters, got {value!r}")
        return value

    @validates("stock", "on_hand")
    def _validate_quantity(self, key: str, value: int) -> int:
        if value is not None and value < 0:
            raise ValidationError(f"Product {key} cannot be negative")
        return value


# =============================================================================
# CUSTOMER STORE
# =============================================================================

class Customer(Base):
    """Customer identity. ``password_hash`` is opaque and never leaves this table."""
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    orders: Mapped[List["Order"]] = relationship(back_populates="customer")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"Customer(id={self.id!r}, email={self.email!r})"


# =============================================================================
# ORDERS
# =============================================================================

class Order(Base):
    """
    Order Header

    ``total_amount`` equals the sum of quantity x unit_price over its
    line items at commit time.
    """
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    customer: Mapped["Customer"] = relationship(back_populates="orders")
    items: Mapped[List["OrderLineItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderLineItem.id",
    )

    __table_args__ = (
        Index("ix_orders_customer", "customer_id"),
        Index("ix_orders_created_at", "created_at"),
    )


class OrderLineItem(Base):
    """One product and quantity within an order, priced at order time."""
    __tablename__ = "order_line_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[str] = mapped_column(
        String(SKU_LENGTH), ForeignKey("products.id"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    order: Mapped["Order"] = relationship(back_populates="items")
    product: Mapped["Product"] = relationship()

    __table_args__ = (
        UniqueConstraint("order_id", "product_id", name="uq_order_line_items_order_product"),
        CheckConstraint("quantity > 0", name="ck_order_line_items_quantity_positive"),
        Index("ix_order_line_items_product", "product_id"),
    )

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price


# =============================================================================
# SALES HISTORY
# =============================================================================

class SalesHistoryRecord(Base):
    """
    Sales History Snapshot

    Written once per line item by ``bookshop.ordering.history``. Names and
    prices are copied at write time and never follow later edits of the
    source rows. The id references are kept for traceability only.
    """
    __tablename__ = "sales_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    customer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=False
    )
    customer_name: Mapped[str] = mapped_column(String(201), nullable=False)

    order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("orders.id"), nullable=False
    )
    line_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("order_line_items.id"), unique=True, nullable=False
    )
    ordered_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    product_id: Mapped[str] = mapped_column(
        String(SKU_LENGTH), ForeignKey("products.id"), nullable=False
    )
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)

    quantity: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    __table_args__ = (
        Index("ix_sales_history_customer", "customer_id"),
        Index("ix_sales_history_order", "order_id"),
        Index("ix_sales_history_product", "product_id"),
    )


@event.listens_for(SalesHistoryRecord, "before_update")
def _refuse_history_update(mapper, connection, target) -> None:
    raise ValidationError("Sales history records are append-only and cannot be updated")


@event.listens_for(SalesHistoryRecord, "before_delete")
def _refuse_history_delete(mapper, connection, target) -> None:
    raise ValidationError("Sales history records are append-only and cannot be deleted")
