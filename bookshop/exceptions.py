"""
Domain Exceptions

Every failure in the core is scoped to a single operation and raised as one of
these types. The HTTP layer maps ``status_code`` onto responses.
"""

from typing import Any, Optional


class BookshopError(Exception):
    """Base exception for the orders core."""

    code = "bookshop_error"
    status_code = 500

    def __init__(self, message: str, *args):
        super().__init__(message, *args)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message}


class NotFound(BookshopError):
    """Unknown customer, product, category or order reference."""

    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, key: Any):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} {key!r} not found")


class Conflict(BookshopError):
    """Duplicate product within one submission, or stock contention past the retry budget."""

    code = "conflict"
    status_code = 409


class InsufficientStock(BookshopError):
    """Requested quantity exceeds available stock."""

    code = "insufficient_stock"
    status_code = 409

    def __init__(self, product_id: str, requested: int, available: Optional[int] = None):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        if available is None:
            message = f"Product {product_id!r}: stock changed, {requested} no longer available"
        else:
            message = f"Product {product_id!r}: requested {requested}, only {available} in stock"
        super().__init__(message)


class ValidationError(BookshopError):
    """Non-positive quantity, malformed date or window, invalid catalog change."""

    code = "validation_error"
    status_code = 422


class HistoryProjectionError(BookshopError):
    """A line item could not be joined to its order, customer or product."""

    code = "history_projection_failed"
