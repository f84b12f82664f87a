"""Tests for TransactionEventConsumer with a mocked SQS client."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from activity_feed.config import ActivityFeedSettings
from activity_feed.consumer.sqs import ConsumerState, TransactionEventConsumer
from activity_feed.exceptions import ConfigurationError, EventProcessingError
from activity_feed.observability import get_correlation_id
from activity_feed.ports import PutResult

from conftest import QUEUE_URL, make_event_dict, make_message


@pytest.fixture
def processor() -> MagicMock:
    processor = MagicMock()
    processor.process = AsyncMock(return_value=PutResult.CREATED)
    return processor


@pytest.fixture
def consumer(
    sqs_connection: MagicMock, processor: MagicMock
) -> TransactionEventConsumer:
    return TransactionEventConsumer(
        sqs_connection,
        processor,
        QUEUE_URL,
        worker_count=2,
        queue_capacity=4,
        wait_time_seconds=0,
        error_backoff=0.01,
        poll_join_timeout=1.0,
        shutdown_timeout=1.0,
    )


def _scripted(*batches: dict) -> Callable[..., Awaitable[dict]]:
    """receive_message stand-in: the given batches, then empty long polls."""
    remaining = list(batches)

    async def receive(**kwargs: object) -> dict:
        if remaining:
            return remaining.pop(0)
        await asyncio.sleep(0.005)
        return {"Messages": []}

    return receive


async def _wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


@pytest.mark.asyncio
async def test_process_message_acknowledges_after_success(
    consumer: TransactionEventConsumer,
    processor: MagicMock,
    sqs_client: MagicMock,
) -> None:
    message = make_message(make_event_dict(), index=7)
    assert await consumer.process_message(message) is True
    event = processor.process.await_args.args[0]
    assert event.event_id == "e1"
    sqs_client.delete_message.assert_awaited_once_with(
        QueueUrl=QUEUE_URL, ReceiptHandle="rh7"
    )


@pytest.mark.asyncio
async def test_duplicate_is_acknowledged(
    consumer: TransactionEventConsumer,
    processor: MagicMock,
    sqs_client: MagicMock,
) -> None:
    processor.process.return_value = PutResult.ALREADY_EXISTS
    assert await consumer.process_message(make_message(make_event_dict()))
    sqs_client.delete_message.assert_awaited_once()


@pytest.mark.asyncio
async def test_failed_processing_leaves_message_in_queue(
    consumer: TransactionEventConsumer,
    processor: MagicMock,
    sqs_client: MagicMock,
) -> None:
    processor.process.side_effect = EventProcessingError("store down", event_id="e1")
    assert await consumer.process_message(make_message(make_event_dict())) is False
    sqs_client.delete_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_malformed_body_is_not_acknowledged(
    consumer: TransactionEventConsumer,
    processor: MagicMock,
    sqs_client: MagicMock,
) -> None:
    assert await consumer.process_message(make_message("{not json")) is False
    assert await consumer.process_message(make_message(json.dumps({"x": 1}))) is False
    processor.process.assert_not_awaited()
    sqs_client.delete_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_event_id_is_the_correlation_id_while_processing(
    consumer: TransactionEventConsumer, processor: MagicMock
) -> None:
    seen: list[str | None] = []

    async def capture(event: object) -> PutResult:
        seen.append(get_correlation_id())
        return PutResult.CREATED

    processor.process.side_effect = capture
    await consumer.process_message(make_message(make_event_dict(event_id="e42")))
    assert seen == ["e42"]
    assert get_correlation_id() is None


@pytest.mark.asyncio
async def test_start_polls_and_processes_messages(
    consumer: TransactionEventConsumer,
    processor: MagicMock,
    sqs_client: MagicMock,
) -> None:
    batch = {
        "Messages": [
            make_message(make_event_dict(event_id=f"e{i}", transaction_id=f"t{i}"), i)
            for i in range(3)
        ]
    }
    sqs_client.receive_message.side_effect = _scripted(batch)

    await consumer.start()
    assert consumer.is_running
    await _wait_for(lambda: sqs_client.delete_message.await_count == 3)
    await consumer.stop()

    assert consumer.state is ConsumerState.STOPPED
    kwargs = sqs_client.receive_message.await_args_list[0].kwargs
    assert kwargs == {
        "QueueUrl": QUEUE_URL,
        "MaxNumberOfMessages": 10,
        "WaitTimeSeconds": 0,
        "VisibilityTimeout": 30,
    }
    handles = {
        c.kwargs["ReceiptHandle"] for c in sqs_client.delete_message.await_args_list
    }
    assert handles == {"rh0", "rh1", "rh2"}


@pytest.mark.asyncio
async def test_poll_errors_back_off_and_continue(
    consumer: TransactionEventConsumer,
    sqs_client: MagicMock,
) -> None:
    calls = 0

    async def flaky(**kwargs: object) -> dict:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("network down")
        await asyncio.sleep(0.005)
        return {"Messages": []}

    sqs_client.receive_message.side_effect = flaky
    await consumer.start()
    await _wait_for(lambda: calls >= 3)
    await consumer.stop()
    assert consumer.state is ConsumerState.STOPPED


@pytest.mark.asyncio
async def test_start_and_stop_are_idempotent(
    consumer: TransactionEventConsumer, sqs_client: MagicMock
) -> None:
    sqs_client.receive_message.side_effect = _scripted()

    await consumer.stop()
    assert consumer.state is ConsumerState.STOPPED

    await consumer.start()
    pool = consumer._pool
    await consumer.start()
    assert consumer._pool is pool

    await consumer.stop()
    await consumer.stop()
    assert consumer.state is ConsumerState.STOPPED

    # A stopped consumer can be started again.
    await consumer.start()
    assert consumer.is_running
    await consumer.stop()


@pytest.mark.asyncio
async def test_stop_waits_for_in_flight_messages(
    consumer: TransactionEventConsumer,
    processor: MagicMock,
    sqs_client: MagicMock,
) -> None:
    started = asyncio.Event()

    async def slow(event: object) -> PutResult:
        started.set()
        await asyncio.sleep(0.05)
        return PutResult.CREATED

    processor.process.side_effect = slow
    sqs_client.receive_message.side_effect = _scripted(
        {"Messages": [make_message(make_event_dict())]}
    )

    await consumer.start()
    await asyncio.wait_for(started.wait(), 2.0)
    await consumer.stop()
    sqs_client.delete_message.assert_awaited_once()


def test_from_settings_requires_queue_url(
    sqs_connection: MagicMock, processor: MagicMock
) -> None:
    with pytest.raises(ConfigurationError):
        TransactionEventConsumer.from_settings(
            ActivityFeedSettings(), sqs_connection, processor
        )
    consumer = TransactionEventConsumer.from_settings(
        ActivityFeedSettings(queue_url=QUEUE_URL, worker_count=3),
        sqs_connection,
        processor,
    )
    assert consumer.state is ConsumerState.STOPPED
