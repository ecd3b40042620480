"""
Catalog Module

Category tree integrity checks and the product text search contract.
"""
from .categories import add_category, assert_acyclic, move_category, order_categories
from .search import search_products

__all__ = [
    "add_category",
    "assert_acyclic",
    "move_category",
    "order_categories",
    "search_products",
]
