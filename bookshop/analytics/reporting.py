"""
Reporting Engine

Read-only revenue and customer-value reports over committed orders.

Calendar windows (days, months) are interpreted in the reference time zone
from ``REPORTING_TIMEZONE`` and converted to the naive UTC timestamps the
orders table stores. All windows are half-open: ``[start, end)``.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import List, Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.types import Numeric

from bookshop.config import get_settings
from bookshop.database.models import Customer, Order, OrderLineItem, Product, utcnow
from bookshop.exceptions import ValidationError

logger = structlog.get_logger(__name__)

ZERO = Decimal("0.00")


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class ProductRevenue:
    """Revenue of one product over a reporting window"""
    product_id: str
    product_name: str
    units_sold: int
    revenue: Decimal


@dataclass(frozen=True)
class CustomerValue:
    """Spend of one customer over a rolling window"""
    customer_id: int
    full_name: str
    email: str
    order_count: int
    total_spent: Decimal


# =============================================================================
# WINDOW HELPERS
# =============================================================================

def resolve_timezone(tz: Union[str, ZoneInfo, None] = None) -> ZoneInfo:
    """Reference time zone, defaulting to the configured one."""
    if isinstance(tz, ZoneInfo):
        return tz
    name = tz or get_settings().reporting.timezone
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown time zone {name!r}") from e


def parse_day(day: Union[date, str]) -> date:
    """Accept a ``date``/``datetime`` or an ISO ``YYYY-MM-DD`` string."""
    if isinstance(day, datetime):
        return day.date()
    if isinstance(day, date):
        return day
    if isinstance(day, str):
        try:
            return date.fromisoformat(day.strip())
        except ValueError as e:
            raise ValidationError(f"Malformed date {day!r}, expected YYYY-MM-DD") from e
    raise ValidationError(f"Expected a date, got {type(day).__name__}")


def money_sum(expr):
    """
    SUM rounded to cents inside the database.

    Ordering and HAVING comparisons run on this value, so they see the same
    amount the caller gets back even where the backend sums in floating point.
    """
    return func.round(func.sum(expr), 2, type_=Numeric(14, 2))


def _to_utc_naive(local: datetime) -> datetime:
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def day_bounds(day: date, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    """UTC bounds of one local calendar day."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return _to_utc_naive(start), _to_utc_naive(end)


def month_bounds(year: int, month: int, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    """UTC bounds of one local calendar month."""
    if not isinstance(year, int) or not isinstance(month, int) or not 1 <= month <= 12:
        raise ValidationError(f"Malformed month {year!r}-{month!r}")
    if not 1 <= year <= 9998:
        raise ValidationError(f"Year {year} out of range")
    first = date(year, month, 1)
    following = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    start = datetime.combine(first, time.min, tzinfo=tz)
    end = datetime.combine(following, time.min, tzinfo=tz)
    return _to_utc_naive(start), _to_utc_naive(end)


# =============================================================================
# REPORTS
# =============================================================================

async def daily_revenue(
    session: AsyncSession,
    day: Union[date, str],
    tz: Union[str, ZoneInfo, None] = None,
) -> Decimal:
    """
    Sum of order totals placed on ``day`` in the reference time zone.

    Returns zero when there were no orders.
    """
    target = parse_day(day)
    start, end = day_bounds(target, resolve_timezone(tz))

    result = await session.execute(
        select(money_sum(Order.total_amount)).where(
            and_(Order.created_at >= start, Order.created_at < end)
        )
    )
    revenue = result.scalar()

    logger.debug("Daily revenue computed", day=target.isoformat(), revenue=str(revenue or ZERO))
    return revenue if revenue is not None else ZERO


async def monthly_top_products(
    session: AsyncSession,
    year: int,
    month: int,
    limit: Optional[int] = None,
    tz: Union[str, ZoneInfo, None] = None,
) -> List[ProductRevenue]:
    """
    Top products of a calendar month by revenue (quantity x unit_price).

    Ties are broken by product id ascending.
    """
    if limit is None:
        limit = get_settings().reporting.top_products_limit
    if not isinstance(limit, int) or isinstance(limit, bool) or limit <= 0:
        raise ValidationError(f"Limit must be a positive integer, got {limit!r}")

    start, end = month_bounds(year, month, resolve_timezone(tz))

    revenue = money_sum(OrderLineItem.quantity * OrderLineItem.unit_price)
    units = func.sum(OrderLineItem.quantity)

    result = await session.execute(
        select(
            Product.id.label("product_id"),
            Product.name.label("product_name"),
            units.label("units_sold"),
            revenue.label("revenue"),
        )
        .select_from(OrderLineItem)
        .join(Order, Order.id == OrderLineItem.order_id)
        .join(Product, Product.id == OrderLineItem.product_id)
        .where(and_(Order.created_at >= start, Order.created_at < end))
        .group_by(Product.id, Product.name)
        .order_by(revenue.desc(), Product.id.asc())
        .limit(limit)
    )

    ranking = [
        ProductRevenue(
            product_id=row.product_id,
            product_name=row.product_name,
            units_sold=int(row.units_sold or 0),
            revenue=row.revenue if row.revenue is not None else ZERO,
        )
        for row in result.all()
    ]

    logger.debug("Monthly top products computed", year=year, month=month, limit=limit, rows=len(ranking))
    return ranking


async def high_value_customers(
    session: AsyncSession,
    window: Optional[timedelta] = None,
    threshold: Optional[Decimal] = None,
    now: Optional[datetime] = None,
) -> List[CustomerValue]:
    """
    Customers whose order totals within ``[now - window, now)`` strictly
    exceed ``threshold``, highest spend first.
    """
    reporting = get_settings().reporting
    if window is None:
        window = timedelta(days=reporting.high_value_window_days)
    if threshold is None:
        threshold = reporting.high_value_threshold

    if not isinstance(window, timedelta) or window <= timedelta(0):
        raise ValidationError(f"Window must be a positive duration, got {window!r}")
    try:
        threshold = Decimal(str(threshold))
    except ArithmeticError as e:
        raise ValidationError(f"Malformed threshold {threshold!r}") from e
    if not threshold.is_finite() or threshold < 0:
        raise ValidationError(f"Threshold must be a non-negative amount, got {threshold}")

    end = now or utcnow()
    if end.tzinfo is not None:
        end = _to_utc_naive(end)
    start = end - window

    total = money_sum(Order.total_amount)

    result = await session.execute(
        select(
            Customer.id.label("customer_id"),
            Customer.first_name,
            Customer.last_name,
            Customer.email,
            func.count(Order.id).label("order_count"),
            total.label("total_spent"),
        )
        .select_from(Order)
        .join(Customer, Customer.id == Order.customer_id)
        .where(and_(Order.created_at >= start, Order.created_at < end))
        .group_by(Customer.id, Customer.first_name, Customer.last_name, Customer.email)
        .having(total > threshold)
        .order_by(total.desc(), Customer.id.asc())
    )

    customers = [
        CustomerValue(
            customer_id=row.customer_id,
            full_name=f"{row.first_name} {row.last_name}",
            email=row.email,
            order_count=row.order_count,
            total_spent=row.total_spent,
        )
        for row in result.all()
    ]

    logger.debug(
        "High-value customers computed",
        window_days=window.days,
        threshold=str(threshold),
        customers=len(customers),
    )
    return customers
