"""
Products API Endpoints

Case-insensitive product text search.
"""

from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from bookshop.catalog import search_products
from bookshop.database.connection import get_db_dependency

router = APIRouter()


class ProductSummary(BaseModel):
    """Product search hit"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    name_fr: str
    description: str
    category_id: int
    author_id: int
    sale_price: Decimal
    stock: int


@router.get("/search", response_model=List[ProductSummary])
async def search(
    q: str = Query(..., min_length=1, max_length=200),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db_dependency),
) -> List[ProductSummary]:
    """Substring match over names and descriptions in both languages."""
    products = await search_products(db, q, limit)
    return [ProductSummary.model_validate(p) for p in products]
