"""DynamoDBTransactionStore: TransactionStore over a DynamoDB table.

Table layout:

- partition key ``user_id``, sort key ``sk`` (``<occurredAt>#<id>``)
- global secondary index ``id-index`` on ``id``

There is no single-key delete: without the partition key a record can
only be reached through the secondary index.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import StoreError
from ..ports import PutOutcome, PutResult, QueryResult
from .serialization import (
    PARTITION_KEY,
    SORT_KEY,
    item_to_key,
    item_to_record,
    key_to_item,
    record_to_item,
)

if TYPE_CHECKING:
    from ..domain.models import TransactionRecord
    from .connection import DynamoDBConnectionManager

logger = logging.getLogger(__name__)

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


def _error_code(exc: ClientError) -> str | None:
    return (getattr(exc, "response", None) or {}).get("Error", {}).get("Code")


class DynamoDBTransactionStore:
    """Conditional puts, id-index lookups and descending partition queries."""

    def __init__(
        self,
        connection: DynamoDBConnectionManager,
        table_name: str = "transactions",
        *,
        id_index_name: str = "id-index",
    ) -> None:
        self._connection = connection
        self._table_name = table_name
        self._id_index_name = id_index_name

    async def put(self, record: TransactionRecord) -> PutOutcome:
        logger.debug(
            "Saving transaction to DynamoDB: userId=%s, sk=%s, id=%s",
            record.owner_id,
            record.sort_key,
            record.id,
        )
        client = await self._connection.get_client()
        try:
            await client.put_item(
                TableName=self._table_name,
                Item=record_to_item(record),
                ConditionExpression="attribute_not_exists(#sk)",
                ExpressionAttributeNames={"#sk": SORT_KEY},
                ReturnValuesOnConditionCheckFailure="ALL_OLD",
            )
        except ClientError as e:
            if _error_code(e) == CONDITIONAL_CHECK_FAILED:
                logger.info(
                    "Transaction already exists (idempotent duplicate): "
                    "userId=%s, sk=%s",
                    record.owner_id,
                    record.sort_key,
                )
                old_item = (getattr(e, "response", None) or {}).get("Item")
                existing = item_to_record(old_item) if old_item else record
                return PutOutcome(PutResult.ALREADY_EXISTS, existing)
            raise StoreError(f"Failed to save transaction {record.id}: {e}") from e
        except BotoCoreError as e:
            raise StoreError(f"Failed to save transaction {record.id}: {e}") from e
        return PutOutcome(PutResult.CREATED, record)

    async def get_by_transaction_id(self, record_id: str) -> TransactionRecord | None:
        client = await self._connection.get_client()
        try:
            out = await client.query(
                TableName=self._table_name,
                IndexName=self._id_index_name,
                KeyConditionExpression="#id = :id",
                ExpressionAttributeNames={"#id": "id"},
                ExpressionAttributeValues={":id": {"S": record_id}},
                Limit=1,
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"Failed to look up transaction {record_id}: {e}") from e
        items = out.get("Items", [])
        if not items:
            logger.debug("Transaction not found with id: %s", record_id)
            return None
        return item_to_record(items[0])

    async def query_by_owner(
        self,
        owner_id: str,
        *,
        sort_key_lower: str | None = None,
        sort_key_upper: str | None = None,
        exclusive_start_key: dict[str, str] | None = None,
        fetch_limit: int,
    ) -> QueryResult:
        names = {"#pk": PARTITION_KEY}
        values: dict[str, Any] = {":pk": {"S": owner_id}}
        condition = "#pk = :pk"
        if sort_key_lower is not None or sort_key_upper is not None:
            if sort_key_lower is None or sort_key_upper is None:
                raise ValueError("sort key bounds must be given together")
            names["#sk"] = SORT_KEY
            values[":lo"] = {"S": sort_key_lower}
            values[":hi"] = {"S": sort_key_upper}
            condition += " AND #sk BETWEEN :lo AND :hi"

        params: dict[str, Any] = {
            "TableName": self._table_name,
            "KeyConditionExpression": condition,
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": values,
            "ScanIndexForward": False,
            "Limit": fetch_limit,
        }
        if exclusive_start_key:
            params["ExclusiveStartKey"] = key_to_item(exclusive_start_key)

        client = await self._connection.get_client()
        try:
            out = await client.query(**params)
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"Failed to query transactions of {owner_id}: {e}") from e
        items = [item_to_record(item) for item in out.get("Items", [])]
        last_key = out.get("LastEvaluatedKey")
        return QueryResult(items, item_to_key(last_key) if last_key else None)

    async def delete(self, record_id: str) -> None:
        raise StoreError(
            "delete is not supported: records are keyed by owner and sort key, "
            f"and {record_id!r} alone does not address one"
        )
