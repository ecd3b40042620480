"""
Unit Tests - Product Search
"""
import pytest

from bookshop.catalog import search_products
from bookshop.exceptions import ValidationError


class TestSearchProducts:
    """Tests for search_products"""

    async def test_case_insensitive_name_match(self, catalog, test_db):
        results = await search_products(test_db, "orient")
        assert [p.id for p in results] == [catalog.orient]

    async def test_matches_french_fields(self, catalog, test_db):
        results = await search_products(test_db, "rome antique")
        assert [p.id for p in results] == [catalog.spqr]

    async def test_matches_descriptions(self, catalog, test_db):
        results = await search_products(test_db, "SNOWBOUND")
        assert [p.id for p in results] == [catalog.orient]

    async def test_results_ordered_by_sku(self, catalog, test_db):
        results = await search_products(test_db, "the")
        ids = [p.id for p in results]
        assert ids == sorted(ids)
        assert catalog.then_none in ids
        assert catalog.hound in ids

    async def test_wildcards_are_literal(self, catalog, test_db):
        results = await search_products(test_db, "100%")
        assert [p.id for p in results] == [catalog.women_power]

        assert [p.id for p in await search_products(test_db, "%")] == [catalog.women_power]
        assert await search_products(test_db, "_") == []

    async def test_limit(self, catalog, test_db):
        results = await search_products(test_db, "e", limit=2)
        assert len(results) == 2

    async def test_no_match(self, catalog, test_db):
        assert await search_products(test_db, "cookbook") == []

    @pytest.mark.parametrize("term", ["", "   "])
    async def test_blank_term(self, test_db, term):
        with pytest.raises(ValidationError):
            await search_products(test_db, term)

    async def test_bad_limit(self, test_db):
        with pytest.raises(ValidationError):
            await search_products(test_db, "orient", limit=0)
