"""TransactionQueryService: read facade consumed by the HTTP layer."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from pydantic import Field

from .domain.models import TransactionStatus, TransactionType, WireModel
from .exceptions import TransactionNotFoundError

if TYPE_CHECKING:
    from .domain.filters import FilterRequest
    from .domain.models import TransactionRecord
    from .ports import TransactionStore
    from .router import TransactionQueryRouter

logger = logging.getLogger(__name__)


class TransactionResponse(WireModel):
    """A transaction as returned to clients, metadata decoded."""

    id: str
    owner_id: str = Field(alias="userId")
    product: str | None = None
    transaction_type: TransactionType | None = Field(default=None, alias="type")
    status: TransactionStatus | None = None
    amount: Decimal | None = None
    currency: str | None = None
    description: str | None = None
    occurred_at: datetime
    created_at: datetime
    source_service: str | None = None
    event_id: str | None = None
    transaction_id: str | None = None
    metadata: dict[str, Any] | None = None

    @classmethod
    def from_record(cls, record: TransactionRecord) -> TransactionResponse:
        return cls(
            id=record.id,
            owner_id=record.owner_id,
            product=record.product,
            transaction_type=record.transaction_type,
            status=record.status,
            amount=record.amount,
            currency=record.currency,
            description=record.description,
            occurred_at=record.occurred_at,
            created_at=record.created_at,
            source_service=record.source_service,
            event_id=record.event_id,
            transaction_id=record.transaction_id,
            metadata=record.metadata(),
        )


class PageResponse(WireModel):
    """``{content, nextCursor, size, hasMore}``; hasMore iff nextCursor is set."""

    content: list[TransactionResponse] = Field(default_factory=list)
    next_cursor: str | None = None
    size: int = 0
    has_more: bool = False


class TransactionQueryService:
    """Paged, filtered reads through the router; point lookups by id."""

    def __init__(
        self,
        router: TransactionQueryRouter,
        store: TransactionStore,
    ) -> None:
        self._router = router
        self._store = store

    async def get_transactions(self, filters: FilterRequest) -> PageResponse:
        logger.info(
            "Fetching transactions with filters: userId=%s, cursor=%s, limit=%s",
            filters.owner_id,
            filters.cursor is not None,
            filters.limit,
        )
        page = await self._router.route(filters)
        content = [TransactionResponse.from_record(r) for r in page.items]
        return PageResponse(
            content=content,
            next_cursor=page.next_cursor,
            size=len(content),
            has_more=page.next_cursor is not None,
        )

    async def get_transaction(self, transaction_id: str) -> TransactionResponse:
        logger.info("Fetching transaction by id: %s", transaction_id)
        record = await self._store.get_by_transaction_id(transaction_id)
        if record is None:
            raise TransactionNotFoundError(transaction_id)
        return TransactionResponse.from_record(record)
