"""InMemoryTransactionStore: TransactionStore for tests and local runs."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..ports import PutOutcome, PutResult, QueryResult
from .serialization import PARTITION_KEY, SORT_KEY

if TYPE_CHECKING:
    from ..domain.models import TransactionRecord


class InMemoryTransactionStore:
    """Same contract as the DynamoDB store, held in dicts.

    The conditional put checks and inserts without awaiting in between, so
    it is atomic on the event loop.
    """

    def __init__(self) -> None:
        self._partitions: dict[str, dict[str, TransactionRecord]] = {}
        self._by_id: dict[str, TransactionRecord] = {}

    async def put(self, record: TransactionRecord) -> PutOutcome:
        partition = self._partitions.setdefault(record.owner_id, {})
        existing = partition.get(record.sort_key)
        if existing is not None:
            return PutOutcome(PutResult.ALREADY_EXISTS, existing)
        partition[record.sort_key] = record
        self._by_id[record.id] = record
        return PutOutcome(PutResult.CREATED, record)

    async def get_by_transaction_id(self, record_id: str) -> TransactionRecord | None:
        return self._by_id.get(record_id)

    async def query_by_owner(
        self,
        owner_id: str,
        *,
        sort_key_lower: str | None = None,
        sort_key_upper: str | None = None,
        exclusive_start_key: dict[str, str] | None = None,
        fetch_limit: int,
    ) -> QueryResult:
        partition = self._partitions.get(owner_id, {})
        keys = sorted(partition, reverse=True)
        if sort_key_lower is not None:
            keys = [k for k in keys if k >= sort_key_lower]
        if sort_key_upper is not None:
            keys = [k for k in keys if k <= sort_key_upper]
        if exclusive_start_key:
            start = exclusive_start_key[SORT_KEY]
            keys = [k for k in keys if k < start]
        page = keys[:fetch_limit]
        last_key = None
        if len(keys) > fetch_limit:
            last_key = {PARTITION_KEY: owner_id, SORT_KEY: page[-1]}
        return QueryResult([partition[k] for k in page], last_key)

    def all_records(self) -> list[TransactionRecord]:
        return [r for p in self._partitions.values() for r in p.values()]
