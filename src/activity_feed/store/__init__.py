"""Primary store adapters: DynamoDB and in-memory."""

from __future__ import annotations

from .connection import DynamoDBConnectionManager
from .dynamodb import DynamoDBTransactionStore
from .memory import InMemoryTransactionStore

__all__ = [
    "DynamoDBConnectionManager",
    "DynamoDBTransactionStore",
    "InMemoryTransactionStore",
]
