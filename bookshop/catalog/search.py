"""
Product Text Search Contract

Case-insensitive substring matching over the product text fields an external
search component indexes. Tokenization and ranking live outside this core;
this is the plain fallback the core guarantees.
"""

from typing import List

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from bookshop.database.models import Product
from bookshop.exceptions import ValidationError

SEARCHABLE_FIELDS = (
    Product.name,
    Product.name_fr,
    Product.description,
    Product.description_fr,
    Product.long_description,
    Product.long_description_fr,
)


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


async def search_products(session: AsyncSession, term: str, limit: int = 50) -> List[Product]:
    """Products whose name or descriptions contain ``term``, ignoring case."""
    if term is None or not term.strip():
        raise ValidationError("Search term cannot be blank")
    if limit <= 0:
        raise ValidationError(f"Limit must be positive, got {limit}")

    pattern = _like_pattern(term.strip())
    result = await session.execute(
        select(Product)
        .where(or_(*(field.ilike(pattern, escape="\\") for field in SEARCHABLE_FIELDS)))
        .order_by(Product.id)
        .limit(limit)
    )
    return list(result.scalars().all())
