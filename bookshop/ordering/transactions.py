"""
Order Transaction Manager

The primary write path. ``create_order`` validates a submission, persists the
order header, each line item (projecting its sales history immediately after
it is written), and the stock decrements, all inside one transaction.

Concurrency:
- Product rows are read ``FOR UPDATE`` in SKU order so concurrent orders for
  the same product serialize on it.
- Stock is decremented with a guarded ``UPDATE ... WHERE stock >= :qty``,
  so stock can never go negative even where row locks are unavailable.
- Lock or serialization contention is retried in a fresh transaction a
  bounded number of times before surfacing as ``Conflict``.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import structlog
from prometheus_client import Counter, Histogram
from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bookshop.config import get_settings
from bookshop.database.models import Customer, Order, OrderLineItem, Product, utcnow
from bookshop.exceptions import BookshopError, Conflict, InsufficientStock, NotFound, ValidationError
from bookshop.ordering.history import project_line_item

logger = structlog.get_logger(__name__)

# Largest value a SmallInteger quantity column holds
MAX_LINE_QUANTITY = 32767

# PostgreSQL serialization_failure, deadlock_detected and lock_not_available
CONTENTION_SQLSTATES = frozenset({"40001", "40P01", "55P03"})

# SQLite reports writer contention only through the message
CONTENTION_MARKERS = ("database is locked", "database is busy", "deadlock")


# =============================================================================
# METRICS
# =============================================================================

ORDERS_TOTAL = Counter(
    "bookshop_orders_total",
    "Order submissions by outcome",
    ["outcome"],
)

CONTENTION_RETRIES = Counter(
    "bookshop_order_contention_retries_total",
    "Order attempts abandoned on lock or serialization contention",
)

ORDER_DURATION = Histogram(
    "bookshop_order_duration_seconds",
    "Time spent creating an order, retries included",
)


@dataclass(frozen=True)
class OrderedItem:
    """One requested product and quantity"""
    product_id: str
    quantity: int


@dataclass(frozen=True)
class OrderReceipt:
    """Result of a committed order"""
    order_id: int
    total_amount: Decimal
    created_at: datetime
    item_count: int


ItemInput = Union[OrderedItem, Tuple[str, int]]


def normalize_items(ordered_items: Iterable[ItemInput]) -> List[OrderedItem]:
    """
    Validate a submission before any database work.

    Raises:
        ValidationError: Empty submission or a non-positive quantity
        Conflict: The same product appears more than once
    """
    items: List[OrderedItem] = []
    seen = set()

    for raw in ordered_items:
        item = raw if isinstance(raw, OrderedItem) else OrderedItem(*raw)

        if not isinstance(item.quantity, int) or isinstance(item.quantity, bool):
            raise ValidationError(f"Quantity for {item.product_id!r} must be an integer")
        if item.quantity <= 0:
            raise ValidationError(f"Quantity for {item.product_id!r} must be positive, got {item.quantity}")
        if item.quantity > MAX_LINE_QUANTITY:
            raise ValidationError(f"Quantity for {item.product_id!r} exceeds {MAX_LINE_QUANTITY}")

        if item.product_id in seen:
            raise Conflict(f"Product {item.product_id!r} appears more than once in the order")
        seen.add(item.product_id)
        items.append(item)

    if not items:
        raise ValidationError("An order needs at least one line item")
    return items


def is_contention_error(exc: DBAPIError) -> bool:
    """Lock timeouts, deadlocks and serialization failures are worth retrying."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in CONTENTION_SQLSTATES:
        return True
    if isinstance(exc, OperationalError):
        message = str(orig).lower()
        return any(marker in message for marker in CONTENTION_MARKERS)
    return False


class OrderTransactionManager:
    """
    Creates orders atomically.

    Takes a session factory rather than a session because every attempt
    runs in its own transaction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        retry_limit: Optional[int] = None,
        retry_backoff_ms: Optional[int] = None,
        lock_rows: Optional[bool] = None,
    ):
        ordering = get_settings().ordering
        self._session_factory = session_factory
        self.retry_limit = retry_limit if retry_limit is not None else ordering.stock_retry_limit
        self.retry_backoff_ms = retry_backoff_ms if retry_backoff_ms is not None else ordering.retry_backoff_ms
        self.lock_rows = lock_rows if lock_rows is not None else ordering.lock_stock_rows

        if self.retry_limit < 1:
            raise ValueError("retry_limit must be at least 1")

    async def create_order(
        self,
        customer_id: int,
        ordered_items: Sequence[ItemInput],
        ordered_at: Optional[datetime] = None,
    ) -> OrderReceipt:
        """
        Create an order with its line items, history and stock decrements.

        Args:
            customer_id: Ordering customer
            ordered_items: ``(product_id, quantity)`` pairs or ``OrderedItem``s
            ordered_at: Order timestamp (naive UTC); defaults to transaction time

        Returns:
            OrderReceipt with the new order id and computed total

        Raises:
            ValidationError, Conflict, NotFound, InsufficientStock
        """
        start_time = time.perf_counter()
        try:
            items = normalize_items(ordered_items)
            receipt = await self._create_with_retry(customer_id, items, ordered_at)
        except BookshopError as e:
            ORDERS_TOTAL.labels(outcome=e.code).inc()
            raise
        finally:
            ORDER_DURATION.observe(time.perf_counter() - start_time)

        ORDERS_TOTAL.labels(outcome="created").inc()
        return receipt

    async def _create_with_retry(
        self,
        customer_id: int,
        items: List[OrderedItem],
        ordered_at: Optional[datetime],
    ) -> OrderReceipt:
        log = logger.bind(customer_id=customer_id, item_count=len(items))

        for attempt in range(1, self.retry_limit + 1):
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        receipt = await self._create_in_transaction(session, customer_id, items, ordered_at)
            except IntegrityError as e:
                log.warning("Order rejected by integrity constraint", error=str(e.orig))
                raise Conflict(f"Order violates an integrity constraint: {e.orig}") from e
            except DBAPIError as e:
                if not is_contention_error(e):
                    raise
                CONTENTION_RETRIES.inc()
                log.warning(
                    "Stock contention, retrying order",
                    attempt=attempt,
                    retry_limit=self.retry_limit,
                    error=str(e.orig),
                )
                if attempt < self.retry_limit:
                    await asyncio.sleep(self.retry_backoff_ms * attempt / 1000)
                continue

            log.info(
                "Order created",
                order_id=receipt.order_id,
                total_amount=str(receipt.total_amount),
                attempts=attempt,
            )
            return receipt

        log.error("Stock contention exceeded retry budget", retry_limit=self.retry_limit)
        raise Conflict(f"Could not reserve stock after {self.retry_limit} attempts")

    async def _create_in_transaction(
        self,
        session: AsyncSession,
        customer_id: int,
        items: List[OrderedItem],
        ordered_at: Optional[datetime],
    ) -> OrderReceipt:
        customer = await session.get(Customer, customer_id)
        if customer is None:
            raise NotFound("Customer", customer_id)

        products = await self._load_products(session, [item.product_id for item in items])

        total = Decimal("0.00")
        for item in items:
            product = products.get(item.product_id)
            if product is None:
                raise NotFound("Product", item.product_id)
            if item.quantity > product.stock:
                logger.warning(
                    "Insufficient stock",
                    product_id=product.id,
                    requested=item.quantity,
                    available=product.stock,
                )
                raise InsufficientStock(product.id, item.quantity, product.stock)
            total += item.quantity * product.sale_price

        order = Order(
            customer_id=customer.id,
            created_at=ordered_at or utcnow(),
            total_amount=total,
        )
        session.add(order)
        await session.flush()

        for item in items:
            line_item = OrderLineItem(
                order_id=order.id,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=products[item.product_id].sale_price,
            )
            session.add(line_item)
            await session.flush()
            await project_line_item(session, line_item)

        for item in items:
            await self._decrement_stock(session, item)

        return OrderReceipt(
            order_id=order.id,
            total_amount=total,
            created_at=order.created_at,
            item_count=len(items),
        )

    async def _load_products(self, session: AsyncSession, product_ids: List[str]) -> dict:
        # Consistent lock order across concurrent orders
        stmt = select(Product).where(Product.id.in_(product_ids)).order_by(Product.id)
        if self.lock_rows:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return {product.id: product for product in result.scalars().all()}

    async def _decrement_stock(self, session: AsyncSession, item: OrderedItem) -> None:
        result = await session.execute(
            update(Product)
            .where(Product.id == item.product_id, Product.stock >= item.quantity)
            .values(stock=Product.stock - item.quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "Stock guard rejected decrement",
                product_id=item.product_id,
                requested=item.quantity,
            )
            raise InsufficientStock(item.product_id, item.quantity)
