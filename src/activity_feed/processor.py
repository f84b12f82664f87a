"""TransactionEventProcessor: idempotent dual write of inbound events.

1. Map the event to a ``TransactionRecord`` (deterministic key).
2. Conditional put into the primary store. A collision means the event
   was already applied and counts as success.
3. Upsert the stored record into the search index. Failures there are
   logged and swallowed: the primary store is the source of truth.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from .domain.models import TransactionRecord, build_sort_key, utcnow
from .exceptions import EventProcessingError
from .observability import StructuredLogger
from .ports import PutResult

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from .domain.models import InboundEvent
    from .ports import TransactionSearchIndex, TransactionStore

logger = logging.getLogger(__name__)


class TransactionEventProcessor:
    """Applies one ``InboundEvent`` to the primary store and the search index."""

    def __init__(
        self,
        store: TransactionStore,
        search_index: TransactionSearchIndex,
        *,
        clock: Callable[[], datetime] = utcnow,
        structured_logger: StructuredLogger | None = None,
    ) -> None:
        self._store = store
        self._search_index = search_index
        self._clock = clock
        self._structured = structured_logger or StructuredLogger(logger)

    def to_record(self, event: InboundEvent) -> TransactionRecord:
        """Map an event to the record it produces.

        ``occurred_at`` falls back to the event timestamp, then to the
        processing time. Metadata that cannot be serialized is dropped.
        """
        payload = event.payload
        record_id = event.dedup_id
        now = self._clock()
        occurred_at = payload.occurred_at or event.event_timestamp or now

        metadata_json = None
        if payload.metadata:
            try:
                metadata_json = json.dumps(payload.metadata, sort_keys=True)
            except (TypeError, ValueError):
                logger.warning(
                    "Failed to serialize metadata for transaction: %s",
                    record_id,
                    exc_info=True,
                )

        return TransactionRecord(
            owner_id=payload.owner_id,
            sort_key=build_sort_key(occurred_at, record_id),
            id=record_id,
            product=payload.product,
            transaction_type=payload.transaction_type,
            status=payload.status,
            amount=payload.amount,
            currency=payload.currency,
            description=payload.description,
            occurred_at=occurred_at,
            created_at=now,
            source_service=event.source_service,
            event_id=event.event_id,
            transaction_id=payload.transaction_id,
            metadata_json=metadata_json,
        )

    async def process(self, event: InboundEvent) -> PutResult:
        """Apply *event*; a duplicate returns ``ALREADY_EXISTS`` instead of raising."""
        logger.info(
            "Processing transaction event: eventId=%s, transactionId=%s",
            event.event_id,
            event.payload.transaction_id,
        )
        with self._structured.timed(
            "transaction_event", event_type=event.event_type
        ) as entry:
            entry["outcome"] = "processed"
            record = self.to_record(event)
            try:
                outcome = await self._store.put(record)
            except Exception as e:
                logger.error(
                    "Failed to process transaction event: eventId=%s",
                    event.event_id,
                    exc_info=True,
                )
                raise EventProcessingError(
                    f"Failed to process transaction event {event.event_id}: {e}",
                    event_id=event.event_id,
                ) from e

            if outcome.result is PutResult.ALREADY_EXISTS:
                logger.info(
                    "Duplicate transaction event ignored (idempotent): "
                    "transactionId=%s, eventId=%s",
                    record.id,
                    event.event_id,
                )
                entry["outcome"] = "duplicate"

            await self._mirror(outcome.record)
            entry["transaction_id"] = record.id
            return outcome.result

    async def _mirror(self, record: TransactionRecord) -> None:
        try:
            await self._search_index.upsert(record)
        except Exception:  # noqa: BLE001
            logger.error(
                "Failed to index in search index (non-fatal): %s",
                record.id,
                exc_info=True,
            )
