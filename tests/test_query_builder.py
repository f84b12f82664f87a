"""Tests for SearchQueryBuilder."""

from __future__ import annotations

from datetime import datetime, timezone

from activity_feed.ports import SearchCriteria, SortSpec
from activity_feed.search.query_builder import SearchQueryBuilder, to_bson_datetime

builder = SearchQueryBuilder()


def test_owner_only_match() -> None:
    assert builder.build_match(SearchCriteria(owner_id="u1")) == {"owner_id": "u1"}


def test_compound_match() -> None:
    criteria = SearchCriteria(
        owner_id="u1",
        terms={"product": "CARD", "status": "COMPLETED"},
        occurred_from=datetime(2024, 1, 1, tzinfo=timezone.utc),
        occurred_to=datetime(2024, 1, 31, tzinfo=timezone.utc),
        text="a.b",
        metadata={"merchant": "ACME"},
    )
    match = builder.build_match(criteria)
    clauses = match["$and"]
    assert {"owner_id": "u1"} in clauses
    assert {"product": "CARD"} in clauses
    assert {"status": "COMPLETED"} in clauses
    assert {
        "occurred_at": {
            "$gte": datetime(2024, 1, 1),
            "$lte": datetime(2024, 1, 31),
        }
    } in clauses
    assert {"metadata.merchant": "ACME"} in clauses
    text = next(c for c in clauses if "$or" in c)
    # Free text is matched literally, not as a pattern.
    assert text["$or"][0] == {"description": {"$regex": r"a\.b", "$options": "i"}}
    assert len(text["$or"]) == 3


def test_sort_directions() -> None:
    sort = [SortSpec("amount", descending=True), SortSpec("id")]
    assert builder.build_sort(sort) == [("amount", -1), ("id", 1)]


def test_search_after_descending_then_id() -> None:
    sort = [SortSpec("amount", descending=True), SortSpec("id")]
    cond = builder.build_search_after(sort, (20.0, "t5"))
    assert cond == {
        "$or": [
            {"$or": [{"amount": {"$lt": 20.0}}, {"amount": None}]},
            {"amount": 20.0, "id": {"$gt": "t5"}},
        ]
    }


def test_search_after_ascending_converts_datetimes() -> None:
    sort = [SortSpec("occurred_at"), SortSpec("id")]
    value = datetime(2024, 1, 1, 0, 0, 0, 123456, tzinfo=timezone.utc)
    cond = builder.build_search_after(sort, (value, "t1"))
    bson_value = datetime(2024, 1, 1, 0, 0, 0, 123000)
    assert cond == {
        "$or": [
            {"occurred_at": {"$gt": bson_value}},
            {"occurred_at": bson_value, "id": {"$gt": "t1"}},
        ]
    }


def test_search_after_null_value_descending_only_ties_remain() -> None:
    sort = [SortSpec("amount", descending=True), SortSpec("id")]
    cond = builder.build_search_after(sort, (None, "t1"))
    assert cond == {"amount": None, "id": {"$gt": "t1"}}


def test_to_bson_datetime_truncates_to_milliseconds() -> None:
    value = datetime(2024, 1, 1, 1, 2, 3, 456789, tzinfo=timezone.utc)
    assert to_bson_datetime(value) == datetime(2024, 1, 1, 1, 2, 3, 456000)
