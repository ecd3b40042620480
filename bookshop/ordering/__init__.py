"""
Ordering Module

Atomic order creation and the sales history projector it drives.
"""
from .history import history_for_order, project_line_item
from .transactions import OrderedItem, OrderReceipt, OrderTransactionManager, normalize_items

__all__ = [
    "OrderTransactionManager",
    "OrderedItem",
    "OrderReceipt",
    "normalize_items",
    "project_line_item",
    "history_for_order",
]
