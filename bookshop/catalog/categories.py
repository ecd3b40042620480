"""
Category Tree Integrity

The category table is a plain node table with a nullable parent. Nothing in
the schema stops a cycle, so every insert or re-parenting goes through
``assert_acyclic`` first, and bulk imports are ordered with
``order_categories`` so parents always land before their children.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bookshop.database.models import Category
from bookshop.exceptions import NotFound, ValidationError

logger = structlog.get_logger(__name__)


async def assert_acyclic(session: AsyncSession, category_id: Optional[int], parent_id: Optional[int]) -> None:
    """
    Check that giving ``category_id`` the parent ``parent_id`` keeps the tree acyclic.

    Walks up from ``parent_id`` to the root; reaching ``category_id`` on the
    way means the change would close a loop.

    Raises:
        NotFound: The parent (or one of its ancestors) does not exist
        ValidationError: The change would create a cycle
    """
    if parent_id is None:
        return
    if category_id is not None and parent_id == category_id:
        raise ValidationError(f"Category {category_id} cannot be its own parent")

    visited = set()
    current: Optional[int] = parent_id
    while current is not None:
        if category_id is not None and current == category_id:
            raise ValidationError(
                f"Moving category {category_id} under {parent_id} would create a cycle"
            )
        if current in visited:
            raise ValidationError(f"Category tree already contains a cycle through {current}")
        visited.add(current)

        result = await session.execute(select(Category.parent_id).where(Category.id == current))
        row = result.one_or_none()
        if row is None:
            raise NotFound("Category", current)
        current = row.parent_id


async def add_category(
    session: AsyncSession,
    name: str,
    parent_id: Optional[int] = None,
    name_fr: str = "",
    description: str = "",
    description_fr: str = "",
) -> Category:
    """Insert a category under an existing parent (or as a root)."""
    await assert_acyclic(session, None, parent_id)

    category = Category(
        name=name,
        name_fr=name_fr,
        description=description,
        description_fr=description_fr,
        parent_id=parent_id,
    )
    session.add(category)
    await session.flush()

    logger.info("Category added", category_id=category.id, parent_id=parent_id)
    return category


async def move_category(session: AsyncSession, category_id: int, parent_id: Optional[int]) -> Category:
    """Re-parent a category, refusing moves under its own descendants."""
    category = await session.get(Category, category_id)
    if category is None:
        raise NotFound("Category", category_id)

    await assert_acyclic(session, category_id, parent_id)
    category.parent_id = parent_id
    await session.flush()

    logger.info("Category moved", category_id=category_id, parent_id=parent_id)
    return category


def order_categories(
    rows: Iterable[Mapping[str, Any]],
    existing_ids: Iterable[int] = (),
) -> List[Mapping[str, Any]]:
    """
    Topologically order category rows so each parent precedes its children.

    Args:
        rows: Category records with ``id`` and optional ``parent_id``
        existing_ids: Categories already in the database, valid as parents

    Raises:
        ValidationError: Unknown parent or a cycle among the rows
    """
    by_id: Dict[int, Mapping[str, Any]] = {}
    for row in rows:
        if row["id"] in by_id:
            raise ValidationError(f"Duplicate category id {row['id']}")
        by_id[row["id"]] = row

    known = set(existing_ids)
    ordered: List[Mapping[str, Any]] = []
    # 0 = unvisited, 1 = on the current path, 2 = placed
    state: Dict[int, int] = {}

    for root in by_id:
        stack = [root]
        while stack:
            node = stack[-1]
            if state.get(node) == 2:
                stack.pop()
                continue
            state[node] = 1
            parent = by_id[node].get("parent_id")

            if parent is None or parent in known or state.get(parent) == 2:
                state[node] = 2
                ordered.append(by_id[node])
                stack.pop()
            elif parent not in by_id:
                raise ValidationError(f"Category {node} references unknown parent {parent}")
            elif state.get(parent) == 1:
                raise ValidationError(f"Category rows contain a cycle through {node}")
            else:
                stack.append(parent)

    return ordered
