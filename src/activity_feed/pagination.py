"""Cursor pagination shared by the primary-store and search-index read paths.

Both paths fetch ``limit + 1`` items. When the extra item shows up it is
dropped and the cursor is built from the last item that is actually
returned, never from the dropped one.

A cursor is the urlsafe base64 of a small JSON object::

    {"_src": "store", "user_id": "u1", "sk": "2024-01-01T00:00:00Z#t1"}

``_src`` tags the backend that issued it; the other keys are that
backend's position-key fields, all string valued. Decoding checks the
tag and the exact key set, so a cursor issued by one path (or by a query
with a different sort) is rejected instead of silently paging wrong.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from .exceptions import InvalidCursorError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

T = TypeVar("T")

BACKEND_TAG = "_src"


@dataclass(frozen=True)
class CursorPage(Generic[T]):
    """One page of results; ``next_cursor`` is None once the end is reached."""

    items: list[T] = field(default_factory=list)
    next_cursor: str | None = None

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None

    @property
    def size(self) -> int:
        return len(self.items)


class CursorCodec:
    """Encode/decode position keys for one backend and one set of key fields."""

    def __init__(self, backend: str, fields: Sequence[str]) -> None:
        if not fields:
            raise ValueError("fields must not be empty")
        if BACKEND_TAG in fields:
            raise ValueError(f"{BACKEND_TAG!r} is reserved")
        self.backend = backend
        self.fields = tuple(fields)

    def encode(self, position: dict[str, str]) -> str:
        """Encode a position key to an opaque cursor string."""
        if set(position) != set(self.fields):
            raise ValueError(
                f"position key must have exactly the fields {list(self.fields)}"
            )
        data: dict[str, str] = {BACKEND_TAG: self.backend}
        for name in self.fields:
            data[name] = str(position[name])
        raw = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")

    def decode(self, cursor: str) -> dict[str, str]:
        """Decode a cursor issued by this codec.

        Anything else raises ``InvalidCursorError``.
        """
        try:
            padded = cursor + "=" * (-len(cursor) % 4)
            raw = base64.urlsafe_b64decode(padded.encode("ascii"))
            data = json.loads(raw.decode("utf-8"))
        except (binascii.Error, UnicodeError, ValueError) as e:
            raise InvalidCursorError("cursor could not be decoded") from e
        if not isinstance(data, dict):
            raise InvalidCursorError("cursor has an unexpected structure")
        if data.pop(BACKEND_TAG, None) != self.backend:
            raise InvalidCursorError("cursor was not issued for this query")
        if set(data) != set(self.fields):
            raise InvalidCursorError("cursor references unknown fields")
        if not all(isinstance(v, str) for v in data.values()):
            raise InvalidCursorError("cursor values must be strings")
        return {name: data[name] for name in self.fields}


def take_page(
    fetched: Sequence[T],
    limit: int,
    codec: CursorCodec,
    position_of: Callable[[T], dict[str, str]],
) -> CursorPage[T]:
    """Turn a ``limit + 1`` fetch into a page.

    ``len(fetched) <= limit`` means the caller reached the end: everything
    is returned and there is no cursor.
    """
    if limit < 1:
        raise ValueError("limit must be >= 1")
    if len(fetched) <= limit:
        return CursorPage(items=list(fetched), next_cursor=None)
    kept = list(fetched[:limit])
    return CursorPage(items=kept, next_cursor=codec.encode(position_of(kept[-1])))
