"""Tests for TransactionEventProcessor: mapping, idempotency, dual write."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from activity_feed.exceptions import EventProcessingError, SearchIndexError, StoreError
from activity_feed.ports import PutResult
from activity_feed.processor import TransactionEventProcessor
from activity_feed.store.memory import InMemoryTransactionStore

from conftest import make_event

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def search_mock() -> MagicMock:
    index = MagicMock()
    index.upsert = AsyncMock()
    return index


@pytest.fixture
def processor(
    store: InMemoryTransactionStore, search_mock: MagicMock
) -> TransactionEventProcessor:
    return TransactionEventProcessor(store, search_mock, clock=lambda: NOW)


def test_to_record_builds_deterministic_key(
    processor: TransactionEventProcessor,
) -> None:
    record = processor.to_record(make_event())
    assert record.owner_id == "u1"
    assert record.id == "t1"
    assert record.sort_key == "2024-01-01T00:00:00Z#t1"
    assert record.event_id == "e1"
    assert record.transaction_id == "t1"
    assert record.source_service == "payments"
    assert record.created_at == NOW


def test_to_record_falls_back_to_event_id(
    processor: TransactionEventProcessor,
) -> None:
    record = processor.to_record(make_event(transaction_id=None))
    assert record.id == "e1"
    assert record.transaction_id is None
    assert record.sort_key.endswith("#e1")


def test_to_record_occurred_at_falls_back_to_event_timestamp(
    processor: TransactionEventProcessor,
) -> None:
    record = processor.to_record(make_event(occurred_at=None))
    assert record.sort_key == "2024-01-01T00:00:05Z#t1"


def test_to_record_occurred_at_falls_back_to_now(
    processor: TransactionEventProcessor,
) -> None:
    event = make_event(occurred_at=None).model_copy(update={"event_timestamp": None})
    record = processor.to_record(event)
    assert record.occurred_at == NOW


def test_to_record_serializes_metadata(processor: TransactionEventProcessor) -> None:
    record = processor.to_record(make_event(metadata={"merchant": "ACME", "mcc": 5814}))
    assert json.loads(record.metadata_json) == {"merchant": "ACME", "mcc": 5814}


def test_to_record_drops_unserializable_metadata(
    processor: TransactionEventProcessor, caplog: pytest.LogCaptureFixture
) -> None:
    event = make_event()
    payload = event.payload.model_copy(update={"metadata": {"bad": object()}})
    event = event.model_copy(update={"payload": payload})
    with caplog.at_level(logging.WARNING):
        record = processor.to_record(event)
    assert record.metadata_json is None
    assert record.id == "t1"
    assert "Failed to serialize metadata" in caplog.text


@pytest.mark.asyncio
async def test_process_writes_store_and_index(
    processor: TransactionEventProcessor,
    store: InMemoryTransactionStore,
    search_mock: MagicMock,
) -> None:
    result = await processor.process(make_event())
    assert result is PutResult.CREATED
    assert len(store.all_records()) == 1
    search_mock.upsert.assert_awaited_once()
    assert search_mock.upsert.await_args.args[0].id == "t1"


@pytest.mark.asyncio
async def test_process_same_event_twice_stores_one_record(
    processor: TransactionEventProcessor,
    store: InMemoryTransactionStore,
    search_mock: MagicMock,
) -> None:
    assert await processor.process(make_event()) is PutResult.CREATED
    assert await processor.process(make_event()) is PutResult.ALREADY_EXISTS
    assert len(store.all_records()) == 1
    # The duplicate still mirrors the stored record into the index.
    assert search_mock.upsert.await_count == 2
    first, second = (c.args[0] for c in search_mock.upsert.await_args_list)
    assert first == second


@pytest.mark.asyncio
async def test_duplicate_mirrors_stored_record_not_the_new_one(
    store: InMemoryTransactionStore, search_mock: MagicMock
) -> None:
    first = TransactionEventProcessor(store, search_mock, clock=lambda: NOW)
    later = datetime(2024, 7, 1, tzinfo=timezone.utc)
    second = TransactionEventProcessor(store, search_mock, clock=lambda: later)
    await first.process(make_event())
    await second.process(make_event(description="changed"))
    mirrored = search_mock.upsert.await_args_list[-1].args[0]
    assert mirrored.created_at == NOW
    assert mirrored.description == "Coffee shop"


@pytest.mark.asyncio
async def test_search_index_failure_is_swallowed(
    processor: TransactionEventProcessor,
    store: InMemoryTransactionStore,
    search_mock: MagicMock,
) -> None:
    search_mock.upsert.side_effect = SearchIndexError("index down")
    assert await processor.process(make_event()) is PutResult.CREATED
    assert len(store.all_records()) == 1


@pytest.mark.asyncio
async def test_store_failure_raises_processing_error(search_mock: MagicMock) -> None:
    failing = MagicMock()
    failing.put = AsyncMock(side_effect=StoreError("throttled"))
    processor = TransactionEventProcessor(failing, search_mock)
    with pytest.raises(EventProcessingError) as exc_info:
        await processor.process(make_event())
    assert exc_info.value.event_id == "e1"
    assert isinstance(exc_info.value.__cause__, StoreError)
    search_mock.upsert.assert_not_awaited()


@pytest.mark.asyncio
async def test_process_emits_structured_outcome(
    processor: TransactionEventProcessor, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO, logger="activity_feed.processor"):
        await processor.process(make_event())
        await processor.process(make_event())
    entries = []
    for rec in caplog.records:
        try:
            entries.append(json.loads(rec.getMessage()))
        except ValueError:
            continue
    assert [e["outcome"] for e in entries] == ["processed", "duplicate"]
    assert entries[0]["kind"] == "transaction_event"
    assert entries[0]["transaction_id"] == "t1"
    assert "duration_ms" in entries[0]
