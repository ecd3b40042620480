"""
Reporting API Endpoints

Daily revenue, monthly top products and high-value customers.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bookshop.analytics import daily_revenue, high_value_customers, monthly_top_products
from bookshop.config import get_settings
from bookshop.database.connection import get_db_dependency

router = APIRouter()
logger = structlog.get_logger(__name__)
settings = get_settings()


class DailyRevenueResponse(BaseModel):
    """Revenue of one calendar day"""
    day: date
    timezone: str
    revenue: Decimal


class ProductRevenueResponse(BaseModel):
    """One ranked product"""
    rank: int
    product_id: str
    product_name: str
    units_sold: int
    revenue: Decimal


class TopProductsResponse(BaseModel):
    year: int
    month: int
    products: List[ProductRevenueResponse]


class CustomerValueResponse(BaseModel):
    """Customer spend over the window"""
    customer_id: int
    full_name: str
    email: str
    order_count: int
    total_spent: Decimal


class HighValueCustomersResponse(BaseModel):
    window_days: int
    threshold: Decimal
    customers: List[CustomerValueResponse]


@router.get("/revenue/daily", response_model=DailyRevenueResponse)
async def get_daily_revenue(
    day: date,
    db: AsyncSession = Depends(get_db_dependency),
) -> DailyRevenueResponse:
    """Sum of order totals for one day in the reference time zone."""
    revenue = await daily_revenue(db, day)
    return DailyRevenueResponse(day=day, timezone=settings.reporting.timezone, revenue=revenue)


@router.get("/products/top", response_model=TopProductsResponse)
async def get_top_products(
    year: int = Query(..., ge=1, le=9998),
    month: int = Query(..., ge=1, le=12),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    db: AsyncSession = Depends(get_db_dependency),
) -> TopProductsResponse:
    """Top products of a month by revenue, ties broken by product id."""
    ranking = await monthly_top_products(db, year, month, limit)
    return TopProductsResponse(
        year=year,
        month=month,
        products=[
            ProductRevenueResponse(rank=i, **vars(entry))
            for i, entry in enumerate(ranking, start=1)
        ],
    )


@router.get("/customers/high-value", response_model=HighValueCustomersResponse)
async def get_high_value_customers(
    window_days: Optional[int] = Query(None, ge=1, le=3650),
    threshold: Optional[Decimal] = Query(None, ge=0),
    db: AsyncSession = Depends(get_db_dependency),
) -> HighValueCustomersResponse:
    """Customers whose spend over the rolling window exceeds the threshold."""
    window_days = window_days or settings.reporting.high_value_window_days
    threshold = threshold if threshold is not None else settings.reporting.high_value_threshold

    customers = await high_value_customers(db, timedelta(days=window_days), threshold)
    logger.info("High-value customers report", window_days=window_days, customers=len(customers))

    return HighValueCustomersResponse(
        window_days=window_days,
        threshold=threshold,
        customers=[CustomerValueResponse(**vars(c)) for c in customers],
    )
