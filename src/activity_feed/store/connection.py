"""DynamoDB client for the primary store."""

from __future__ import annotations

from ..aws import AioClientManager
from ..exceptions import StoreError


class DynamoDBConnectionManager(AioClientManager):
    service_name = "dynamodb"
    error = StoreError
