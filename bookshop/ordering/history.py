"""
Sales History Projector

Post-write hook called by the order transaction manager right after each
line item is flushed. It copies customer, order and product details into an
append-only ``SalesHistoryRecord`` inside the caller's transaction, so the
snapshot commits or rolls back together with its line item.
"""

from typing import List

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bookshop.database.models import (
    Customer,
    Order,
    OrderLineItem,
    Product,
    SalesHistoryRecord,
)
from bookshop.exceptions import HistoryProjectionError

logger = structlog.get_logger(__name__)


async def project_line_item(session: AsyncSession, line_item: OrderLineItem) -> SalesHistoryRecord:
    """
    Append the history snapshot for one persisted line item.

    The line item must already be flushed so it has an id. The join reads
    the order, customer and product as they are at this instant inside the
    transaction.

    Raises:
        HistoryProjectionError: If any referenced row cannot be joined
    """
    if line_item.id is None:
        raise HistoryProjectionError("Line item must be flushed before projecting history")

    result = await session.execute(
        select(
            Order.id.label("order_id"),
            Order.created_at.label("ordered_at"),
            Customer.id.label("customer_id"),
            Customer.first_name,
            Customer.last_name,
            Product.id.label("product_id"),
            Product.name.label("product_name"),
        )
        .select_from(OrderLineItem)
        .join(Order, Order.id == OrderLineItem.order_id)
        .join(Customer, Customer.id == Order.customer_id)
        .join(Product, Product.id == OrderLineItem.product_id)
        .where(OrderLineItem.id == line_item.id)
    )
    row = result.one_or_none()

    if row is None:
        logger.error(
            "History projection join failed",
            line_item_id=line_item.id,
            order_id=line_item.order_id,
            product_id=line_item.product_id,
        )
        raise HistoryProjectionError(
            f"Line item {line_item.id} has no matching order, customer or product"
        )

    record = SalesHistoryRecord(
        customer_id=row.customer_id,
        customer_name=f"{row.first_name} {row.last_name}",
        order_id=row.order_id,
        line_item_id=line_item.id,
        ordered_at=row.ordered_at,
        product_id=row.product_id,
        product_name=row.product_name,
        quantity=line_item.quantity,
        unit_price=line_item.unit_price,
    )
    session.add(record)
    await session.flush()

    logger.debug(
        "Sales history projected",
        history_id=record.id,
        order_id=record.order_id,
        line_item_id=line_item.id,
    )
    return record


async def history_for_order(session: AsyncSession, order_id: int) -> List[SalesHistoryRecord]:
    """History snapshots of one order, in line-item insertion order."""
    result = await session.execute(
        select(SalesHistoryRecord)
        .where(SalesHistoryRecord.order_id == order_id)
        .order_by(SalesHistoryRecord.line_item_id)
    )
    return list(result.scalars().all())
