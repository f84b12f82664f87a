"""Search index adapter backed by a MongoDB collection."""

from __future__ import annotations

from .connection import MongoConnectionManager
from .mongo import MongoTransactionSearchIndex
from .query_builder import SearchQueryBuilder

__all__ = [
    "MongoConnectionManager",
    "MongoTransactionSearchIndex",
    "SearchQueryBuilder",
]
