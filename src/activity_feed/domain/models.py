"""Transaction records, inbound queue events and the sort-key scheme."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

SORT_KEY_SEPARATOR = "#"


class TransactionType(str, Enum):
    PAYMENT = "PAYMENT"
    TRANSFER = "TRANSFER"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    REFUND = "REFUND"
    FEE = "FEE"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_instant(value: datetime | str) -> datetime:
    """Parse an ISO-8601 instant; naive values are taken as UTC."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_instant(value: datetime) -> str:
    """Render an instant as ``YYYY-MM-DDTHH:MM:SS[.fff[fff]]Z`` in UTC.

    Whole seconds carry no fraction, so ``2024-01-01T00:00:00Z`` stays
    byte-identical however many times the same event is mapped.
    """
    value = parse_instant(value)
    if value.microsecond == 0:
        timespec = "seconds"
    elif value.microsecond % 1000 == 0:
        timespec = "milliseconds"
    else:
        timespec = "microseconds"
    return value.replace(tzinfo=None).isoformat(timespec=timespec) + "Z"


def normalize_code(value: Any) -> Any:
    """Strip and upper-case a product or currency code; blank reads as absent."""
    if isinstance(value, str):
        value = value.strip()
        return value.upper() or None
    return value


def build_sort_key(occurred_at: datetime, record_id: str) -> str:
    """Sort key ``<occurredAt>#<id>``: orders a partition by time, then id."""
    return f"{format_instant(occurred_at)}{SORT_KEY_SEPARATOR}{record_id}"


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python; both accepted on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class TransactionEventPayload(WireModel):
    """Business fields carried by an inbound event."""

    transaction_id: str | None = None
    owner_id: str = Field(alias="userId", min_length=1)
    product: str | None = None
    transaction_type: TransactionType | None = Field(default=None, alias="type")
    status: TransactionStatus | None = None
    amount: Decimal | None = None
    currency: str | None = None
    description: str | None = None
    occurred_at: datetime | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("occurred_at")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return parse_instant(v) if v is not None else None

    @field_validator("product", "currency", mode="before")
    @classmethod
    def _codes(cls, v: Any) -> Any:
        return normalize_code(v)


class InboundEvent(WireModel):
    """One transaction event as published by another service."""

    event_id: str = Field(min_length=1)
    event_type: str | None = None
    source_service: str | None = None
    event_timestamp: datetime | None = None
    payload: TransactionEventPayload

    @field_validator("event_timestamp")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return parse_instant(v) if v is not None else None

    @property
    def dedup_id(self) -> str:
        """Record id: the payload transaction id, else the event id."""
        return self.payload.transaction_id or self.event_id


class TransactionRecord(WireModel):
    """The persisted transaction.

    ``owner_id`` partitions the primary store; ``sort_key`` orders a
    partition and is never changed after creation; ``id`` is unique across
    all records (the ``id-index`` secondary key). ``metadata_json`` is an
    opaque JSON blob.
    """

    model_config = ConfigDict(frozen=True)

    owner_id: str = Field(alias="userId")
    sort_key: str
    id: str
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
    metadata_json: str | None = None

    @field_validator("occurred_at", "created_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return parse_instant(v)

    def metadata(self) -> dict[str, Any] | None:
        """Decode ``metadata_json``; an undecodable blob reads as absent."""
        if not self.metadata_json:
            return None
        try:
            value = json.loads(self.metadata_json)
        except (TypeError, ValueError):
            logger.error("Failed to deserialize metadata for transaction: %s", self.id)
            return None
        return value if isinstance(value, dict) else None
