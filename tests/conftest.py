"""Shared fixtures: record/event factories, mocked AWS clients, mongomock."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from activity_feed.domain.models import InboundEvent, TransactionRecord, build_sort_key
from activity_feed.search.connection import MongoConnectionManager
from activity_feed.search.mongo import MongoTransactionSearchIndex
from activity_feed.store.memory import InMemoryTransactionStore

pytest_plugins = ["pytest_asyncio"]

QUEUE_URL = "https://sqs.us-east-1.amazonaws.com/123/transaction-events"


def make_event_dict(
    event_id: str = "e1",
    transaction_id: str | None = "t1",
    user_id: str = "u1",
    occurred_at: str | None = "2024-01-01T00:00:00Z",
    **payload: Any,
) -> dict[str, Any]:
    """camelCase event body as published on the queue."""
    body_payload: dict[str, Any] = {
        "userId": user_id,
        "product": "CARD",
        "type": "PAYMENT",
        "status": "COMPLETED",
        "amount": "12.50",
        "currency": "USD",
        "description": "Coffee shop",
    }
    if transaction_id is not None:
        body_payload["transactionId"] = transaction_id
    if occurred_at is not None:
        body_payload["occurredAt"] = occurred_at
    body_payload.update(payload)
    return {
        "eventId": event_id,
        "eventType": "TRANSACTION_CREATED",
        "sourceService": "payments",
        "eventTimestamp": "2024-01-01T00:00:05Z",
        "payload": body_payload,
    }


def make_event(**kwargs: Any) -> InboundEvent:
    return InboundEvent.model_validate(make_event_dict(**kwargs))


def make_message(body: dict[str, Any] | str, index: int = 0) -> dict[str, Any]:
    return {
        "MessageId": f"m{index}",
        "ReceiptHandle": f"rh{index}",
        "Body": body if isinstance(body, str) else json.dumps(body),
    }


def make_record(
    record_id: str = "t1",
    owner_id: str = "u1",
    occurred_at: datetime | None = None,
    **fields: Any,
) -> TransactionRecord:
    occurred_at = occurred_at or datetime(2024, 1, 1, tzinfo=timezone.utc)
    data: dict[str, Any] = {
        "owner_id": owner_id,
        "sort_key": build_sort_key(occurred_at, record_id),
        "id": record_id,
        "product": "CARD",
        "transaction_type": "PAYMENT",
        "status": "COMPLETED",
        "amount": Decimal("10.00"),
        "currency": "USD",
        "description": f"Transaction {record_id}",
        "occurred_at": occurred_at,
        "created_at": occurred_at,
        "source_service": "payments",
        "event_id": f"e-{record_id}",
        "transaction_id": record_id,
    }
    data.update(fields)
    return TransactionRecord.model_validate(data)


@pytest.fixture
def store() -> InMemoryTransactionStore:
    return InMemoryTransactionStore()


@pytest.fixture
async def mongo_connection():
    """MongoConnectionManager backed by mongomock (no real database)."""
    from mongomock_motor import AsyncMongoMockClient

    connection = MongoConnectionManager("mongodb://mock:27017", database="test_db")
    connection._client = AsyncMongoMockClient()
    yield connection


@pytest.fixture
def search_index(
    mongo_connection: MongoConnectionManager,
) -> MongoTransactionSearchIndex:
    return MongoTransactionSearchIndex(mongo_connection, "activity_items")


@pytest.fixture
def sqs_client() -> MagicMock:
    """aiobotocore-like SQS client; receive is an empty long poll by default."""

    async def empty_poll(**kwargs: Any) -> dict[str, Any]:
        await asyncio.sleep(0.005)
        return {"Messages": []}

    client = MagicMock()
    client.receive_message = AsyncMock(side_effect=empty_poll)
    client.delete_message = AsyncMock(return_value={})
    return client


@pytest.fixture
def sqs_connection(sqs_client: MagicMock) -> MagicMock:
    connection = MagicMock()
    connection.get_client = AsyncMock(return_value=sqs_client)
    connection.close = AsyncMock()
    return connection
