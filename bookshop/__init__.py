"""
Bookshop Orders Core

Transactional order creation with synchronous sales history projection,
plus the reporting and recommendation read paths over that history.
"""

__version__ = "1.0.0"
