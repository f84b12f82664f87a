"""Composition root and runnable entry point.

``build_application()`` wires every component from one
``ActivityFeedSettings``; ``run()`` starts the queue consumer and stops
it gracefully on SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from dataclasses import dataclass

from .config import ActivityFeedSettings
from .consumer import SQSConnectionManager, TransactionEventConsumer
from .observability import configure_logging
from .processor import TransactionEventProcessor
from .router import TransactionQueryRouter
from .search import MongoConnectionManager, MongoTransactionSearchIndex
from .service import TransactionQueryService
from .store import DynamoDBConnectionManager, DynamoDBTransactionStore

logger = logging.getLogger(__name__)


@dataclass
class Application:
    """Every long-lived component, built once at startup."""

    settings: ActivityFeedSettings
    sqs: SQSConnectionManager
    dynamodb: DynamoDBConnectionManager
    mongo: MongoConnectionManager
    store: DynamoDBTransactionStore
    search_index: MongoTransactionSearchIndex
    processor: TransactionEventProcessor
    router: TransactionQueryRouter
    query_service: TransactionQueryService
    consumer: TransactionEventConsumer

    async def close(self) -> None:
        await self.sqs.close()
        await self.dynamodb.close()
        self.mongo.close()


def build_application(settings: ActivityFeedSettings) -> Application:
    aws_kwargs = settings.aws_client_kwargs()
    sqs = SQSConnectionManager(settings.aws_region, **aws_kwargs)
    dynamodb = DynamoDBConnectionManager(settings.aws_region, **aws_kwargs)
    mongo = MongoConnectionManager(
        settings.search_url, database=settings.search_database
    )

    store = DynamoDBTransactionStore(
        dynamodb, settings.table_name, id_index_name=settings.id_index_name
    )
    search_index = MongoTransactionSearchIndex(mongo, settings.search_index)
    processor = TransactionEventProcessor(store, search_index)
    router = TransactionQueryRouter(store, search_index)
    return Application(
        settings=settings,
        sqs=sqs,
        dynamodb=dynamodb,
        mongo=mongo,
        store=store,
        search_index=search_index,
        processor=processor,
        router=router,
        query_service=TransactionQueryService(router, store),
        consumer=TransactionEventConsumer.from_settings(settings, sqs, processor),
    )


async def run(settings: ActivityFeedSettings) -> None:
    """Consume until SIGINT/SIGTERM, then drain and close the clients."""
    app = build_application(settings)
    await app.mongo.connect()
    await app.mongo.ensure_indexes(settings.search_index)

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform (e.g. Windows event loops).
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_requested.set)

    await app.consumer.start()
    try:
        await stop_requested.wait()
        logger.info("Shutdown requested")
    finally:
        await app.consumer.stop()
        await app.close()


def main() -> None:
    settings = ActivityFeedSettings.from_env()
    configure_logging(settings.log_level)
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run(settings))
