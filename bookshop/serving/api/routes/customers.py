"""
Customers API Endpoints

Purchase-based product recommendations.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from bookshop.analytics import RecommendationMode, recommend_products
from bookshop.database.connection import get_db_dependency

router = APIRouter()


class RecommendationResponse(BaseModel):
    """A recommended product"""
    product_id: str
    name: str
    category_id: int
    author_id: int


class RecommendationsResponse(BaseModel):
    customer_id: int
    mode: RecommendationMode
    products: List[RecommendationResponse]


@router.get("/{customer_id}/recommendations", response_model=RecommendationsResponse)
async def get_recommendations(
    customer_id: int,
    mode: RecommendationMode = RecommendationMode.SAME_CATEGORY,
    limit: Optional[int] = Query(None, ge=1, le=500),
    db: AsyncSession = Depends(get_db_dependency),
) -> RecommendationsResponse:
    """
    Products from the customer's purchased categories (and authors, in
    ``same_category_and_author`` mode) they have not bought yet.
    """
    recommendations = await recommend_products(db, customer_id, mode, limit)
    return RecommendationsResponse(
        customer_id=customer_id,
        mode=mode,
        products=[RecommendationResponse(**vars(r)) for r in recommendations],
    )
