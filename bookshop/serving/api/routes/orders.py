"""
Orders API Endpoints

Order creation and read-back of orders with their history snapshots.
"""

from datetime import datetime
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from bookshop.database.connection import get_db_dependency, get_session_factory_dependency
from bookshop.database.models import SKU_LENGTH, Order
from bookshop.exceptions import NotFound
from bookshop.ordering import OrderedItem, OrderTransactionManager, history_for_order

router = APIRouter()


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class OrderItemRequest(BaseModel):
    """One requested line"""
    product_id: str = Field(min_length=SKU_LENGTH, max_length=SKU_LENGTH)
    quantity: int = Field(ge=1)


class CreateOrderRequest(BaseModel):
    """Order submission"""
    customer_id: int
    items: List[OrderItemRequest] = Field(min_length=1)


class OrderCreatedResponse(BaseModel):
    """Committed order receipt"""
    order_id: int
    total_amount: Decimal
    created_at: datetime
    item_count: int


class LineItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: str
    quantity: int
    unit_price: Decimal


class OrderDetail(BaseModel):
    """Order with its line items"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    created_at: datetime
    total_amount: Decimal
    items: List[LineItemResponse]


class HistoryRecordResponse(BaseModel):
    """Sales history snapshot row"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    line_item_id: int
    ordered_at: datetime
    customer_id: int
    customer_name: str
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("", response_model=OrderCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    request: CreateOrderRequest,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory_dependency),
) -> OrderCreatedResponse:
    """
    Create an order atomically.

    Duplicate products are rejected with 409, unknown references with 404
    and insufficient stock with 409.
    """
    manager = OrderTransactionManager(session_factory)
    receipt = await manager.create_order(
        request.customer_id,
        [OrderedItem(item.product_id, item.quantity) for item in request.items],
    )
    return OrderCreatedResponse(
        order_id=receipt.order_id,
        total_amount=receipt.total_amount,
        created_at=receipt.created_at,
        item_count=receipt.item_count,
    )


@router.get("/{order_id}", response_model=OrderDetail)
async def get_order(
    order_id: int,
    db: AsyncSession = Depends(get_db_dependency),
) -> OrderDetail:
    """Get an order with its line items."""
    result = await db.execute(
        select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
    )
    order = result.scalar_one_or_none()
    if order is None:
        raise NotFound("Order", order_id)
    return OrderDetail.model_validate(order)


@router.get("/{order_id}/history", response_model=List[HistoryRecordResponse])
async def get_order_history(
    order_id: int,
    db: AsyncSession = Depends(get_db_dependency),
) -> List[HistoryRecordResponse]:
    """Sales history snapshots written for an order."""
    if await db.get(Order, order_id) is None:
        raise NotFound("Order", order_id)
    records = await history_for_order(db, order_id)
    return [HistoryRecordResponse.model_validate(r) for r in records]
