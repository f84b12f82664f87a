"""TransactionQueryRouter: send each read to the backend that answers it cheaply.

The primary store answers only "one owner, optionally a date range,
newest first": that is exactly its partition + sort-key order. Any
attribute filter, free text, metadata match or other sort goes to the
search index.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from .domain.filters import DEFAULT_SORT_FIELD, SortDirection
from .domain.models import format_instant, parse_instant
from .exceptions import InvalidCursorError
from .pagination import CursorCodec, CursorPage, take_page
from .ports import SearchCriteria, SortSpec
from .store.serialization import PARTITION_KEY, SORT_KEY

if TYPE_CHECKING:
    from .domain.filters import FilterRequest
    from .domain.models import TransactionRecord
    from .ports import TransactionSearchIndex, TransactionStore

logger = logging.getLogger(__name__)

# Lowest possible sort key, and the suffix that sorts after any "#<id>" on
# the same timestamp ("~" is above every ISO-8601 character and "#").
SORT_KEY_FLOOR = "1970-01-01T00:00:00Z"
SORT_KEY_CEILING = "9999-12-31T23:59:59Z"
SORT_KEY_UPPER_SENTINEL = "~"

TIE_BREAK_FIELD = "id"

STORE_BACKEND = "store"
SEARCH_BACKEND = "search"


def uses_primary_store(filters: FilterRequest) -> bool:
    """True when only owner (and maybe a date range) is set with the default sort."""
    return (
        not filters.has_attribute_filters
        and filters.sort_by == DEFAULT_SORT_FIELD
        and filters.sort_direction is SortDirection.DESC
    )


def _sort_value_to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return format_instant(value)
    return str(value)


def _sort_value_from_str(attribute: str, raw: str) -> Any:
    if raw == "":
        return None
    try:
        if attribute in ("occurred_at", "created_at"):
            return parse_instant(raw)
        if attribute == "amount":
            return float(Decimal(raw))
    except (ValueError, InvalidOperation) as e:
        raise InvalidCursorError("cursor holds an invalid sort value") from e
    return raw


class TransactionQueryRouter:
    """Routes a ``FilterRequest`` and returns one normalized ``CursorPage``."""

    def __init__(
        self,
        store: TransactionStore,
        search_index: TransactionSearchIndex,
    ) -> None:
        self._store = store
        self._search_index = search_index
        self._store_codec = CursorCodec(STORE_BACKEND, (PARTITION_KEY, SORT_KEY))

    async def route(self, filters: FilterRequest) -> CursorPage[TransactionRecord]:
        if uses_primary_store(filters):
            logger.info(
                "Routing query to primary store: sortBy=%s, sortDirection=%s",
                filters.sort_by,
                filters.sort_direction.value,
            )
            return await self._query_store(filters)
        logger.info(
            "Routing query to search index: sortBy=%s, sortDirection=%s",
            filters.sort_by,
            filters.sort_direction.value,
        )
        return await self._query_search(filters)

    async def _query_store(
        self, filters: FilterRequest
    ) -> CursorPage[TransactionRecord]:
        lower = upper = None
        if filters.has_date_range:
            lower = (
                format_instant(filters.start_date)
                if filters.start_date is not None
                else SORT_KEY_FLOOR
            )
            upper = (
                format_instant(filters.end_date) + SORT_KEY_UPPER_SENTINEL
                if filters.end_date is not None
                else SORT_KEY_CEILING
            )

        start_key = None
        if filters.cursor is not None:
            start_key = self._store_codec.decode(filters.cursor)
            if start_key[PARTITION_KEY] != filters.owner_id:
                raise InvalidCursorError("cursor was issued for another owner")
            if lower is not None and upper is not None:
                if not lower <= start_key[SORT_KEY] <= upper:
                    raise InvalidCursorError("cursor is outside the requested dates")

        result = await self._store.query_by_owner(
            filters.owner_id,
            sort_key_lower=lower,
            sort_key_upper=upper,
            exclusive_start_key=start_key,
            fetch_limit=filters.limit + 1,
        )
        page = take_page(
            result.items,
            filters.limit,
            self._store_codec,
            lambda r: {PARTITION_KEY: r.owner_id, SORT_KEY: r.sort_key},
        )
        logger.debug(
            "Found %d transactions for userId: %s, hasMore: %s",
            page.size,
            filters.owner_id,
            page.has_more,
        )
        return page

    async def _query_search(
        self, filters: FilterRequest
    ) -> CursorPage[TransactionRecord]:
        attribute = filters.sort_attribute
        descending = filters.sort_direction is SortDirection.DESC
        sort = [
            SortSpec(attribute, descending=descending),
            SortSpec(TIE_BREAK_FIELD, descending=False),
        ]
        # The sort field is part of the key set, so a cursor from a
        # differently sorted query is rejected.
        codec = CursorCodec(SEARCH_BACKEND, (attribute, TIE_BREAK_FIELD))

        search_after = None
        if filters.cursor is not None:
            position = codec.decode(filters.cursor)
            search_after = (
                _sort_value_from_str(attribute, position[attribute]),
                position[TIE_BREAK_FIELD],
            )

        hits = await self._search_index.search(
            self.build_criteria(filters),
            sort,
            search_after=search_after,
            fetch_limit=filters.limit + 1,
        )
        return take_page(
            hits.items,
            filters.limit,
            codec,
            lambda r: {
                attribute: _sort_value_to_str(getattr(r, attribute)),
                TIE_BREAK_FIELD: r.id,
            },
        )

    @staticmethod
    def build_criteria(filters: FilterRequest) -> SearchCriteria:
        terms: dict[str, str] = {}
        if filters.product is not None:
            terms["product"] = filters.product
        if filters.transaction_type is not None:
            terms["transaction_type"] = filters.transaction_type.value
        if filters.status is not None:
            terms["status"] = filters.status.value
        if filters.currency is not None:
            terms["currency"] = filters.currency
        metadata: dict[str, str] = {}
        if filters.metadata_field is not None and filters.metadata_value is not None:
            metadata[filters.metadata_field] = filters.metadata_value
        return SearchCriteria(
            owner_id=filters.owner_id,
            terms=terms,
            occurred_from=filters.start_date,
            occurred_to=filters.end_date,
            text=filters.search_text,
            metadata=metadata,
        )
