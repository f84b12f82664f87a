"""SearchQueryBuilder: compiles SearchCriteria, sort and search_after to Mongo."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ..ports import SearchCriteria, SortSpec

TEXT_FIELDS = ("description", "event_id", "transaction_id")


def to_bson_datetime(value: datetime) -> datetime:
    """Naive UTC with millisecond precision, as BSON stores it."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


class SearchQueryBuilder:
    """Builds the ``find`` filter and sort for one search request."""

    def build_match(self, criteria: SearchCriteria) -> dict[str, Any]:
        clauses: list[dict[str, Any]] = [{"owner_id": criteria.owner_id}]
        for field, value in criteria.terms.items():
            clauses.append({field: value})
        if criteria.occurred_from is not None or criteria.occurred_to is not None:
            bounds: dict[str, Any] = {}
            if criteria.occurred_from is not None:
                bounds["$gte"] = to_bson_datetime(criteria.occurred_from)
            if criteria.occurred_to is not None:
                bounds["$lte"] = to_bson_datetime(criteria.occurred_to)
            clauses.append({"occurred_at": bounds})
        if criteria.text:
            pattern = {"$regex": re.escape(criteria.text), "$options": "i"}
            clauses.append({"$or": [{f: pattern} for f in TEXT_FIELDS]})
        for key, value in criteria.metadata.items():
            clauses.append({f"metadata.{key}": value})
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}

    def build_sort(self, sort: Sequence[SortSpec]) -> list[tuple[str, int]]:
        return [(s.field, -1 if s.descending else 1) for s in sort]

    def build_search_after(
        self, sort: Sequence[SortSpec], values: Sequence[Any]
    ) -> dict[str, Any]:
        """Keyset condition for documents strictly after ``values``.

        For sort ``(a desc, id asc)`` and values ``(x, y)`` this is
        ``a < x OR (a == x AND id > y)``. Nulls sort first ascending and
        last descending, matching Mongo's own ordering.
        """
        if len(sort) != len(values):
            raise ValueError("search_after needs one value per sort field")
        values = [
            to_bson_datetime(v) if isinstance(v, datetime) else v for v in values
        ]
        branches: list[dict[str, Any]] = []
        for i, spec in enumerate(sort):
            prefix = {s.field: v for s, v in zip(sort[:i], values[:i])}
            after = self._after(spec, values[i])
            if after is None:
                continue
            branches.append({**prefix, **after} if prefix else after)
        if not branches:
            return {"_id": {"$exists": False}}
        if len(branches) == 1:
            return branches[0]
        return {"$or": branches}

    @staticmethod
    def _after(spec: SortSpec, value: Any) -> dict[str, Any] | None:
        if value is None:
            # Nothing sorts after null descending; everything non-null does ascending.
            return None if spec.descending else {spec.field: {"$ne": None}}
        if spec.descending:
            return {
                "$or": [
                    {spec.field: {"$lt": value}},
                    {spec.field: None},
                ]
            }
        return {spec.field: {"$gt": value}}
