"""MongoTransactionSearchIndex: TransactionSearchIndex over a Mongo collection."""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from ..domain.models import TransactionRecord
from ..exceptions import SearchIndexError
from ..ports import SearchHits
from .query_builder import SearchQueryBuilder, to_bson_datetime

if TYPE_CHECKING:
    from ..ports import SearchCriteria, SortSpec
    from .connection import MongoConnectionManager

logger = logging.getLogger(__name__)


def record_to_document(record: TransactionRecord) -> dict[str, Any]:
    """Search document for a record.

    The opaque metadata blob is expanded to a nested object so that
    ``metadata.<field>`` can be matched; a blob that does not parse is
    left out.
    """
    doc = record.model_dump(mode="python", exclude={"metadata_json"})
    doc["_id"] = record.id
    doc["occurred_at"] = to_bson_datetime(record.occurred_at)
    doc["created_at"] = to_bson_datetime(record.created_at)
    doc["amount"] = float(record.amount) if record.amount is not None else None
    for name in ("transaction_type", "status"):
        if doc[name] is not None:
            doc[name] = doc[name].value
    if record.metadata_json:
        try:
            doc["metadata"] = json.loads(record.metadata_json)
        except ValueError:
            logger.warning("Failed to parse metadata for search index: %s", record.id)
    return doc


def document_to_record(doc: dict[str, Any]) -> TransactionRecord:
    data = {k: v for k, v in doc.items() if k not in ("_id", "metadata")}
    if doc.get("metadata") is not None:
        data["metadata_json"] = json.dumps(doc["metadata"])
    if data.get("amount") is not None:
        data["amount"] = Decimal(str(data["amount"]))
    return TransactionRecord.model_validate(data)


class MongoTransactionSearchIndex:
    """Upserts by record id; compound filtered search with keyset pagination."""

    def __init__(
        self,
        connection: MongoConnectionManager,
        collection: str = "activity_items",
        *,
        query_builder: SearchQueryBuilder | None = None,
    ) -> None:
        self._connection = connection
        self._collection_name = collection
        self._query_builder = query_builder or SearchQueryBuilder()

    def _collection(self) -> Any:
        return self._connection.collection(self._collection_name)

    async def upsert(self, record: TransactionRecord) -> None:
        logger.debug("Indexing transaction in search index: %s", record.id)
        doc = record_to_document(record)
        try:
            await self._collection().replace_one({"_id": doc["_id"]}, doc, upsert=True)
        except Exception as e:
            raise SearchIndexError(
                f"Failed to index transaction {record.id}: {e}"
            ) from e

    async def search(
        self,
        criteria: SearchCriteria,
        sort: list[SortSpec],
        *,
        search_after: tuple[Any, ...] | None = None,
        fetch_limit: int,
    ) -> SearchHits:
        match = self._query_builder.build_match(criteria)
        if search_after is not None:
            after = self._query_builder.build_search_after(sort, search_after)
            match = {"$and": [match, after]}
        order = self._query_builder.build_sort(sort)
        try:
            cursor = self._collection().find(match)
            if order:
                cursor = cursor.sort(order)
            docs = await cursor.limit(fetch_limit).to_list(length=fetch_limit)
        except Exception as e:
            raise SearchIndexError(f"Failed to search transactions: {e}") from e
        items = [document_to_record(d) for d in docs]
        last_sort_values = None
        if docs:
            last_sort_values = tuple(docs[-1].get(s.field) for s in sort)
        logger.debug("Found %d transactions in search index", len(items))
        return SearchHits(items, last_sort_values)
