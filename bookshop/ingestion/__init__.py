"""
Ingestion Module
"""
from .bulk_loader import LOAD_ORDER, BulkLoader, LoadReport

__all__ = ["LOAD_ORDER", "BulkLoader", "LoadReport"]
