"""SQS consumer: poll loop, worker pool and message body codec."""

from __future__ import annotations

from .connection import SQSConnectionManager
from .pool import WorkerPool
from .serialization import EventSerializer
from .sqs import ConsumerState, TransactionEventConsumer

__all__ = [
    "ConsumerState",
    "EventSerializer",
    "SQSConnectionManager",
    "TransactionEventConsumer",
    "WorkerPool",
]
