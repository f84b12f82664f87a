"""Motor client and database handle for the search index."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..exceptions import SearchIndexError

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

logger = logging.getLogger(__name__)

# One compound index per sortable field, each led by the owner and ending
# with the id tie-break, so every routed search is an index scan.
SEARCH_INDEXES: tuple[tuple[tuple[str, int], ...], ...] = (
    (("owner_id", 1), ("occurred_at", -1), ("id", 1)),
    (("owner_id", 1), ("created_at", -1), ("id", 1)),
    (("owner_id", 1), ("amount", -1), ("id", 1)),
)


class MongoConnectionManager:
    """Owns the Motor client; hands out collections of one database."""

    def __init__(
        self,
        url: str = "mongodb://localhost:27017",
        *,
        database: str = "activity_feed",
        server_selection_timeout_ms: int = 5000,
        **client_kwargs: Any,
    ) -> None:
        self._url = url
        self._database_name = database
        self._client_kwargs = {
            "serverSelectionTimeoutMS": server_selection_timeout_ms,
            **client_kwargs,
        }
        self._client: AsyncIOMotorClient[Any] | None = None

    async def connect(self) -> AsyncIOMotorClient[Any]:
        """Create the client once; later calls return the same one."""
        if self._client is None:
            from motor.motor_asyncio import AsyncIOMotorClient

            try:
                self._client = AsyncIOMotorClient(self._url, **self._client_kwargs)
            except Exception as e:
                raise SearchIndexError(f"Failed to connect to {self._url}: {e}") from e
        return self._client

    @property
    def client(self) -> AsyncIOMotorClient[Any]:
        if self._client is None:
            raise SearchIndexError("Search index is not connected; call connect()")
        return self._client

    @property
    def database(self) -> AsyncIOMotorDatabase[Any]:
        return self.client[self._database_name]

    def collection(self, name: str) -> Any:
        return self.database[name]

    async def ensure_indexes(self, collection: str) -> None:
        """Create the search sort indexes on *collection*; existing ones are kept."""
        coll = self.collection(collection)
        for keys in SEARCH_INDEXES:
            try:
                await coll.create_index(list(keys))
            except Exception as e:
                raise SearchIndexError(
                    f"Failed to create index {keys} on {collection}: {e}"
                ) from e
        logger.info("Search indexes ensured on %s", collection)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
