"""Transaction activity feed: event ingestion and paged reads."""

from __future__ import annotations

from .config import ActivityFeedSettings
from .domain import FilterRequest, InboundEvent, TransactionRecord
from .exceptions import (
    ActivityFeedError,
    EventProcessingError,
    InvalidCursorError,
    TransactionNotFoundError,
    ValidationError,
)
from .pagination import CursorCodec, CursorPage
from .processor import TransactionEventProcessor
from .router import TransactionQueryRouter
from .service import PageResponse, TransactionQueryService, TransactionResponse

__version__ = "0.1.0"

__all__ = [
    "ActivityFeedError",
    "ActivityFeedSettings",
    "CursorCodec",
    "CursorPage",
    "EventProcessingError",
    "FilterRequest",
    "InboundEvent",
    "InvalidCursorError",
    "PageResponse",
    "TransactionEventProcessor",
    "TransactionNotFoundError",
    "TransactionQueryRouter",
    "TransactionQueryService",
    "TransactionRecord",
    "TransactionResponse",
    "ValidationError",
]
