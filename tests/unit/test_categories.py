"""
Unit Tests - Category Tree
"""
import pytest

from bookshop.catalog import add_category, assert_acyclic, move_category, order_categories
from bookshop.database.models import Category
from bookshop.exceptions import NotFound, ValidationError


class TestOrderCategories:
    """Tests for bulk-import ordering"""

    def test_parents_precede_children(self):
        rows = [
            {"id": 3, "parent_id": 2, "name": "Cozy"},
            {"id": 2, "parent_id": 1, "name": "Mystery"},
            {"id": 1, "parent_id": None, "name": "Fiction"},
            {"id": 4, "parent_id": None, "name": "History"},
        ]

        ordered = [row["id"] for row in order_categories(rows)]

        assert sorted(ordered) == [1, 2, 3, 4]
        assert ordered.index(1) < ordered.index(2) < ordered.index(3)

    def test_existing_parent_is_accepted(self):
        ordered = order_categories([{"id": 9, "parent_id": 1}], existing_ids=[1])
        assert [row["id"] for row in ordered] == [9]

    def test_unknown_parent(self):
        with pytest.raises(ValidationError):
            order_categories([{"id": 9, "parent_id": 8}])

    def test_cycle(self):
        rows = [
            {"id": 1, "parent_id": 3},
            {"id": 2, "parent_id": 1},
            {"id": 3, "parent_id": 2},
        ]
        with pytest.raises(ValidationError):
            order_categories(rows)

    def test_self_parent(self):
        with pytest.raises(ValidationError):
            order_categories([{"id": 1, "parent_id": 1}])

    def test_duplicate_ids(self):
        with pytest.raises(ValidationError):
            order_categories([{"id": 1, "parent_id": None}, {"id": 1, "parent_id": None}])


class TestCategoryTree:
    """Tests for inserts and moves against the database"""

    async def test_add_child_category(self, catalog, session_factory):
        async with session_factory() as session:
            async with session.begin():
                cozy = await add_category(session, "Cozy", parent_id=2, name_fr="Douillet")

            assert cozy.id is not None
            assert cozy.parent_id == 2

    async def test_add_under_unknown_parent(self, catalog, session_factory):
        async with session_factory() as session:
            with pytest.raises(NotFound):
                await add_category(session, "Lost", parent_id=404)

    async def test_move_under_descendant_is_refused(self, catalog, session_factory):
        """Fiction > Mystery; moving Fiction under Mystery closes a loop"""
        async with session_factory() as session:
            with pytest.raises(ValidationError):
                await move_category(session, 1, 2)

    async def test_move_under_self_is_refused(self, catalog, session_factory):
        async with session_factory() as session:
            with pytest.raises(ValidationError):
                await move_category(session, 2, 2)

    async def test_move_to_other_branch(self, catalog, session_factory, test_db):
        async with session_factory() as session:
            async with session.begin():
                await move_category(session, 2, 3)

        moved = await test_db.get(Category, 2)
        assert moved.parent_id == 3

    async def test_move_to_root(self, catalog, session_factory, test_db):
        async with session_factory() as session:
            async with session.begin():
                await move_category(session, 2, None)

        assert (await test_db.get(Category, 2)).parent_id is None

    async def test_move_unknown_category(self, catalog, session_factory):
        async with session_factory() as session:
            with pytest.raises(NotFound):
                await move_category(session, 404, 1)

    async def test_root_is_always_acyclic(self, catalog, test_db):
        await assert_acyclic(test_db, 1, None)
