"""
Analytics Module

Read-only reporting and recommendation paths over committed orders and
sales history.
"""
from .recommendations import Recommendation, RecommendationMode, recommend_products
from .reporting import (
    CustomerValue,
    ProductRevenue,
    daily_revenue,
    high_value_customers,
    monthly_top_products,
)

__all__ = [
    "Recommendation",
    "RecommendationMode",
    "recommend_products",
    "CustomerValue",
    "ProductRevenue",
    "daily_revenue",
    "high_value_customers",
    "monthly_top_products",
]
