"""Domain types: records, inbound events, filter requests."""

from __future__ import annotations

from .filters import (
    DEFAULT_LIMIT,
    DEFAULT_SORT_FIELD,
    MAX_LIMIT,
    SORTABLE_FIELDS,
    FilterRequest,
    SortDirection,
)
from .models import (
    InboundEvent,
    TransactionEventPayload,
    TransactionRecord,
    TransactionStatus,
    TransactionType,
    build_sort_key,
    format_instant,
    parse_instant,
)

__all__ = [
    "DEFAULT_LIMIT",
    "DEFAULT_SORT_FIELD",
    "MAX_LIMIT",
    "SORTABLE_FIELDS",
    "FilterRequest",
    "InboundEvent",
    "SortDirection",
    "TransactionEventPayload",
    "TransactionRecord",
    "TransactionStatus",
    "TransactionType",
    "build_sort_key",
    "format_instant",
    "parse_instant",
]
