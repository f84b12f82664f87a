"""Ports the core depends on: the primary store and the search index.

Concrete adapters live in ``activity_feed.store`` and
``activity_feed.search``; the processor and the router only see these
protocols.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, NamedTuple, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .domain.models import TransactionRecord


class PutResult(str, Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


class PutOutcome(NamedTuple):
    """Result of a conditional put.

    ``record`` is the record now stored under the key: the new one when
    ``CREATED``, the pre-existing one when ``ALREADY_EXISTS`` (or the
    attempted one if the backend did not return the old item).
    """

    result: PutResult
    record: TransactionRecord


class QueryResult(NamedTuple):
    items: list[TransactionRecord]
    last_evaluated_key: dict[str, str] | None = None


class SearchHits(NamedTuple):
    """Hits plus the raw sort values of the last one.

    ``last_sort_values`` can be passed straight back as ``search_after``.
    Paged reads do not use it: with a ``limit + 1`` fetch the last hit is
    the one dropped, so the cursor is built from the last kept record.
    """

    items: list[TransactionRecord]
    last_sort_values: tuple[Any, ...] | None = None


@dataclass(frozen=True)
class SortSpec:
    """One sort clause; ``descending`` False means ascending."""

    field: str
    descending: bool = False


@dataclass(frozen=True)
class SearchCriteria:
    """Backend-neutral compound filter for the search index.

    ``terms`` are exact matches on record attributes, ``occurred_from`` /
    ``occurred_to`` an inclusive range on ``occurred_at``, ``text`` a
    case-insensitive match across the free-text fields and ``metadata``
    exact matches on metadata keys.
    """

    owner_id: str
    terms: dict[str, str] = field(default_factory=dict)
    occurred_from: datetime | None = None
    occurred_to: datetime | None = None
    text: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class TransactionStore(Protocol):
    """Primary ordered key-value store (partition ``owner_id``, sort ``sort_key``)."""

    async def put(self, record: TransactionRecord) -> PutOutcome:
        """Insert only if no record with this sort key exists in the partition."""
        ...

    async def get_by_transaction_id(self, record_id: str) -> TransactionRecord | None:
        """Point lookup through the secondary index on ``id``."""
        ...

    async def query_by_owner(
        self,
        owner_id: str,
        *,
        sort_key_lower: str | None = None,
        sort_key_upper: str | None = None,
        exclusive_start_key: dict[str, str] | None = None,
        fetch_limit: int,
    ) -> QueryResult:
        """Range query over one partition, newest sort key first."""
        ...


@runtime_checkable
class TransactionSearchIndex(Protocol):
    """Secondary search index over the same records."""

    async def upsert(self, record: TransactionRecord) -> None:
        """Insert or replace the document for ``record.id``; safe to repeat."""
        ...

    async def search(
        self,
        criteria: SearchCriteria,
        sort: list[SortSpec],
        *,
        search_after: tuple[Any, ...] | None = None,
        fetch_limit: int,
    ) -> SearchHits:
        """Filtered, sorted query resuming strictly after ``search_after``."""
        ...
