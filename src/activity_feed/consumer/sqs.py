"""TransactionEventConsumer: SQS poll loop feeding a bounded worker pool.

Lifecycle: ``STOPPED -> RUNNING -> STOPPING -> STOPPED``. ``start()`` and
``stop()`` are no-ops when called in the wrong state.

A message is deleted only after ``TransactionEventProcessor.process``
returned. Anything that fails leaves the message in the queue, where it
becomes visible again after the visibility timeout and is eventually
dead-lettered by the queue's redrive policy.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..exceptions import PoolShutdownError
from ..observability import correlation_scope
from .pool import WorkerPool
from .serialization import EventSerializer

if TYPE_CHECKING:
    from ..config import ActivityFeedSettings
    from ..processor import TransactionEventProcessor
    from .connection import SQSConnectionManager

logger = logging.getLogger(__name__)


class ConsumerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


class TransactionEventConsumer:
    """Long-polls one queue and processes messages in parallel.

    One poll task receives up to ``max_messages`` per call and submits each
    message to a ``WorkerPool`` of ``worker_count`` tasks with room for
    ``queue_capacity`` pending messages; when that is full the poll task
    processes the message itself.
    """

    def __init__(
        self,
        connection: SQSConnectionManager,
        processor: TransactionEventProcessor,
        queue_url: str,
        *,
        worker_count: int = 5,
        queue_capacity: int = 20,
        visibility_timeout: int = 30,
        max_messages: int = 10,
        wait_time_seconds: int = 10,
        error_backoff: float = 1.0,
        poll_join_timeout: float = 5.0,
        shutdown_timeout: float = 10.0,
        serializer: EventSerializer | None = None,
    ) -> None:
        self._connection = connection
        self._processor = processor
        self._queue_url = queue_url
        self._worker_count = worker_count
        self._queue_capacity = queue_capacity
        self._visibility_timeout = visibility_timeout
        self._max_messages = max_messages
        self._wait_time_seconds = wait_time_seconds
        self._error_backoff = error_backoff
        self._poll_join_timeout = poll_join_timeout
        self._shutdown_timeout = shutdown_timeout
        self._serializer = serializer or EventSerializer()
        self._state = ConsumerState.STOPPED
        self._pool: WorkerPool | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._dispatching = False

    @classmethod
    def from_settings(
        cls,
        settings: ActivityFeedSettings,
        connection: SQSConnectionManager,
        processor: TransactionEventProcessor,
    ) -> TransactionEventConsumer:
        return cls(
            connection,
            processor,
            settings.require_queue_url(),
            worker_count=settings.worker_count,
            queue_capacity=settings.worker_queue_capacity,
            visibility_timeout=settings.visibility_timeout,
            max_messages=settings.max_messages,
            wait_time_seconds=settings.wait_time_seconds,
            error_backoff=settings.poll_error_backoff,
            poll_join_timeout=settings.poll_join_timeout,
            shutdown_timeout=settings.pool_shutdown_timeout,
        )

    @property
    def state(self) -> ConsumerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is ConsumerState.RUNNING

    async def start(self) -> None:
        # Check-and-set without an await in between: atomic on the event loop.
        if self._state is not ConsumerState.STOPPED:
            return
        self._state = ConsumerState.RUNNING
        logger.info(
            "Starting SQS consumer for queue: %s with %d workers, "
            "queue capacity: %d, visibility timeout: %ds",
            self._queue_url,
            self._worker_count,
            self._queue_capacity,
            self._visibility_timeout,
        )
        self._pool = WorkerPool(
            self._worker_count, self._queue_capacity, name="sqs-worker"
        )
        self._pool.start()
        self._poll_task = asyncio.create_task(
            self._poll_loop(), name="sqs-consumer-poll"
        )

    async def stop(self) -> None:
        if self._state is not ConsumerState.RUNNING:
            return
        self._state = ConsumerState.STOPPING
        logger.info("Stopping SQS consumer...")

        pool = self._pool
        if pool is not None:
            pool.shutdown()

        poll_task = self._poll_task
        if poll_task is not None:
            # A long-poll wait is interrupted; a batch being dispatched (possibly
            # running a message inline) is left to finish.
            if not self._dispatching:
                poll_task.cancel()
            done, _ = await asyncio.wait({poll_task}, timeout=self._poll_join_timeout)
            if not done:
                logger.warning(
                    "Poll task did not stop within %ss, cancelling",
                    self._poll_join_timeout,
                )
                poll_task.cancel()
                await asyncio.wait({poll_task})
            self._poll_task = None

        if pool is not None:
            if not await pool.await_termination(self._shutdown_timeout):
                logger.warning("Workers did not finish in time, forcing shutdown")
                discarded = await pool.shutdown_now()
                if discarded:
                    logger.warning(
                        "Discarded %d queued messages; they will be redelivered",
                        discarded,
                    )
            self._pool = None

        self._state = ConsumerState.STOPPED
        logger.info("SQS consumer stopped")

    async def _poll_loop(self) -> None:
        logger.info("SQS consumer poll loop started and listening for messages...")
        try:
            while self._state is ConsumerState.RUNNING:
                try:
                    messages = await self._receive()
                    if messages:
                        logger.info(
                            "Received %d messages from SQS queue", len(messages)
                        )
                        self._dispatching = True
                        try:
                            await self._dispatch(messages)
                        finally:
                            self._dispatching = False
                except Exception:  # noqa: BLE001
                    if self._state is not ConsumerState.RUNNING:
                        break
                    logger.error("Error polling SQS queue", exc_info=True)
                    await asyncio.sleep(self._error_backoff)
        except asyncio.CancelledError:
            logger.info("Poll loop interrupted, shutting down")
            raise
        finally:
            logger.info("SQS consumer poll loop stopped")

    async def _receive(self) -> list[dict[str, Any]]:
        client = await self._connection.get_client()
        out = await client.receive_message(
            QueueUrl=self._queue_url,
            MaxNumberOfMessages=self._max_messages,
            WaitTimeSeconds=self._wait_time_seconds,
            VisibilityTimeout=self._visibility_timeout,
        )
        return list(out.get("Messages", []))

    async def _dispatch(self, messages: list[dict[str, Any]]) -> None:
        """Hand a batch to the pool; stop early once shutdown has begun.

        Messages left over stay invisible until their visibility timeout
        and are then redelivered.
        """
        pool = self._pool
        for message in messages:
            if self._state is not ConsumerState.RUNNING:
                logger.info("Consumer stopping, not submitting remaining messages")
                break
            if pool is None or pool.is_shutdown:
                logger.info("Worker pool is shut down, stopping message submission")
                break
            try:
                await pool.submit(functools.partial(self.process_message, message))
            except PoolShutdownError:
                logger.warning(
                    "Message rejected by worker pool (shutdown in progress): %s",
                    message.get("MessageId"),
                )
                break

    async def process_message(self, message: dict[str, Any]) -> bool:
        """Process and acknowledge one message; True if it was deleted.

        Errors are logged, never raised: the message is simply left for
        redelivery.
        """
        message_id = message.get("MessageId")
        logger.debug("Processing message: %s", message_id)
        try:
            event = self._serializer.deserialize(message.get("Body", ""))
            with correlation_scope(event.event_id):
                await self._processor.process(event)
                client = await self._connection.get_client()
                await client.delete_message(
                    QueueUrl=self._queue_url,
                    ReceiptHandle=message["ReceiptHandle"],
                )
        except Exception:  # noqa: BLE001
            logger.error("Error processing SQS message: %s", message_id, exc_info=True)
            return False
        logger.debug("Successfully processed and deleted message: %s", message_id)
        return True
