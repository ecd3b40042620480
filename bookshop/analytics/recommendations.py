"""
Recommendation Engine

Suggests products from the categories (and optionally authors) a customer
has already bought from, excluding anything they already own.

Purchases are read from the sales history through its traceable
``product_id`` reference. History product names are snapshots and are not
unique, so they are never used for matching.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bookshop.database.models import Customer, Product, SalesHistoryRecord
from bookshop.exceptions import NotFound, ValidationError

logger = structlog.get_logger(__name__)


class RecommendationMode(str, Enum):
    """Candidate matching mode"""
    SAME_CATEGORY = "same_category"
    SAME_CATEGORY_AND_AUTHOR = "same_category_and_author"


@dataclass(frozen=True)
class Recommendation:
    """A product the customer has not bought yet"""
    product_id: str
    name: str
    category_id: int
    author_id: int


def resolve_mode(mode: Union[RecommendationMode, str]) -> RecommendationMode:
    try:
        return RecommendationMode(mode)
    except ValueError as e:
        allowed = ", ".join(m.value for m in RecommendationMode)
        raise ValidationError(f"Unknown recommendation mode {mode!r}, expected one of: {allowed}") from e


async def recommend_products(
    session: AsyncSession,
    customer_id: int,
    mode: Union[RecommendationMode, str] = RecommendationMode.SAME_CATEGORY,
    limit: Optional[int] = None,
) -> List[Recommendation]:
    """
    Recommend unpurchased products for a customer.

    Args:
        session: Read session
        customer_id: Customer to recommend for
        mode: ``same_category`` or ``same_category_and_author``
        limit: Optional cap on the number of results

    Returns:
        Recommendations ordered by product id; empty if the customer has
        no purchase history

    Raises:
        NotFound: Unknown customer
        ValidationError: Unknown mode or non-positive limit
    """
    mode = resolve_mode(mode)
    if limit is not None and (not isinstance(limit, int) or limit <= 0):
        raise ValidationError(f"Limit must be a positive integer, got {limit!r}")

    if await session.get(Customer, customer_id) is None:
        raise NotFound("Customer", customer_id)

    purchased = (
        select(SalesHistoryRecord.product_id)
        .where(SalesHistoryRecord.customer_id == customer_id)
        .distinct()
    )
    purchased_ids = set((await session.execute(purchased)).scalars().all())
    if not purchased_ids:
        logger.debug("No purchase history, nothing to recommend", customer_id=customer_id)
        return []

    purchased_categories = select(Product.category_id).where(Product.id.in_(purchased_ids)).distinct()

    stmt = (
        select(Product.id, Product.name, Product.category_id, Product.author_id)
        .where(
            Product.category_id.in_(purchased_categories),
            Product.id.not_in(purchased_ids),
        )
        .order_by(Product.id.asc())
    )

    if mode is RecommendationMode.SAME_CATEGORY_AND_AUTHOR:
        purchased_authors = select(Product.author_id).where(Product.id.in_(purchased_ids)).distinct()
        stmt = stmt.where(Product.author_id.in_(purchased_authors))

    if limit is not None:
        stmt = stmt.limit(limit)

    result = await session.execute(stmt)
    recommendations = [
        Recommendation(
            product_id=row.id,
            name=row.name,
            category_id=row.category_id,
            author_id=row.author_id,
        )
        for row in result.all()
    ]

    logger.debug(
        "Recommendations computed",
        customer_id=customer_id,
        mode=mode.value,
        purchased=len(purchased_ids),
        candidates=len(recommendations),
    )
    return recommendations
