"""TransactionRecord <-> DynamoDB item."""

from __future__ import annotations

from typing import Any

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

from ..domain.models import TransactionRecord, format_instant

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()

# record attribute -> table attribute
ATTRIBUTE_NAMES: dict[str, str] = {
    "owner_id": "user_id",
    "sort_key": "sk",
    "id": "id",
    "product": "product",
    "transaction_type": "type",
    "status": "status",
    "amount": "amount",
    "currency": "currency",
    "description": "description",
    "occurred_at": "occurred_at",
    "created_at": "created_at",
    "source_service": "source_service",
    "event_id": "event_id",
    "transaction_id": "transaction_id",
    "metadata_json": "metadata",
}

PARTITION_KEY = "user_id"
SORT_KEY = "sk"


def record_to_item(record: TransactionRecord) -> dict[str, Any]:
    """Marshal a record; None attributes are left out of the item."""
    plain: dict[str, Any] = {}
    for name, attr in ATTRIBUTE_NAMES.items():
        value = getattr(record, name)
        if value is None:
            continue
        if name in ("occurred_at", "created_at"):
            value = format_instant(value)
        elif name in ("transaction_type", "status"):
            value = value.value
        plain[attr] = value
    return {k: _serializer.serialize(v) for k, v in plain.items()}


def item_to_record(item: dict[str, Any]) -> TransactionRecord:
    plain = {k: _deserializer.deserialize(v) for k, v in item.items()}
    data = {
        name: plain[attr] for name, attr in ATTRIBUTE_NAMES.items() if attr in plain
    }
    return TransactionRecord.model_validate(data)


def key_to_item(key: dict[str, str]) -> dict[str, Any]:
    return {k: {"S": v} for k, v in key.items()}


def item_to_key(item: dict[str, Any]) -> dict[str, str]:
    return {k: v["S"] for k, v in item.items() if "S" in v}
