"""
Store module for relstore.

Provides the in-memory table store and the query engine on top of it.
"""

from .query import QueryEngine
from .table_store import Record, TableStore

__all__ = [
    "QueryEngine",
    "Record",
    "TableStore",
]
