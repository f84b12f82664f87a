"""FilterRequest: read-side query parameters and their validation."""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ValidationError
from .models import (
    TransactionStatus,
    TransactionType,
    WireModel,
    normalize_code,
    parse_instant,
)

DEFAULT_LIMIT = 20
MAX_LIMIT = 100
DEFAULT_SORT_FIELD = "occurredAt"

# API sort field -> record attribute
SORTABLE_FIELDS: dict[str, str] = {
    "occurredAt": "occurred_at",
    "createdAt": "created_at",
    "amount": "amount",
}

_METADATA_FIELD_RE = re.compile(r"^[A-Za-z0-9_]+$")


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class FilterRequest(WireModel):
    """Filters, sort and pagination for one page of a user's transactions."""

    owner_id: str = Field(alias="userId", min_length=1)
    product: str | None = None
    transaction_type: TransactionType | None = Field(default=None, alias="type")
    status: TransactionStatus | None = None
    currency: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    search_text: str | None = None
    metadata_field: str | None = None
    metadata_value: str | None = None

    cursor: str | None = None
    limit: int = Field(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT)
    sort_by: str = DEFAULT_SORT_FIELD
    sort_direction: SortDirection = SortDirection.DESC

    @field_validator("product", "currency", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:
        return normalize_code(v)

    @field_validator("search_text", "cursor", "metadata_field", "metadata_value")
    @classmethod
    def _blank_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v

    @field_validator("start_date", "end_date")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return parse_instant(v) if v is not None else None

    @field_validator("sort_direction", mode="before")
    @classmethod
    def _direction(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("sort_by")
    @classmethod
    def _sortable(cls, v: str) -> str:
        if v not in SORTABLE_FIELDS:
            allowed = ", ".join(sorted(SORTABLE_FIELDS))
            raise ValueError(f"sortBy must be one of: {allowed}")
        return v

    @field_validator("metadata_field")
    @classmethod
    def _metadata_field_name(cls, v: str | None) -> str | None:
        if v is not None and not _METADATA_FIELD_RE.match(v):
            raise ValueError("metadataField must contain only letters, digits and _")
        return v

    @model_validator(mode="after")
    def _consistent(self) -> FilterRequest:
        if (self.metadata_field is None) != (self.metadata_value is None):
            raise ValueError("metadataField and metadataValue must be given together")
        if (
            self.start_date is not None
            and self.end_date is not None
            and self.start_date > self.end_date
        ):
            raise ValueError("startDate must not be after endDate")
        return self

    @classmethod
    def from_query_params(cls, params: dict[str, Any]) -> FilterRequest:
        """Build from raw query parameters; invalid input raises ValidationError."""
        try:
            return cls.model_validate(params)
        except PydanticValidationError as e:
            raise ValidationError(_collect_errors(e)) from e

    @property
    def has_date_range(self) -> bool:
        return self.start_date is not None or self.end_date is not None

    @property
    def has_attribute_filters(self) -> bool:
        """True when any filter other than owner and date range is set."""
        return any(
            value is not None
            for value in (
                self.product,
                self.transaction_type,
                self.status,
                self.currency,
                self.search_text,
                self.metadata_field,
                self.metadata_value,
            )
        )

    @property
    def sort_attribute(self) -> str:
        return SORTABLE_FIELDS[self.sort_by]


def _collect_errors(exc: PydanticValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "__root__"
        errors.setdefault(loc, []).append(err.get("msg", "invalid value"))
    return errors
