"""ActivityFeedSettings: explicit configuration passed to every component."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

ENV_PREFIX = "ACTIVITY_FEED_"


class ActivityFeedSettings(BaseModel):
    """Immutable runtime settings.

    Build one with ``from_env()`` (or directly in tests) and hand it to the
    components at construction; nothing reads the environment afterwards.
    """

    model_config = ConfigDict(frozen=True)

    # Queue
    queue_url: str | None = None
    aws_region: str = "us-east-1"
    aws_endpoint_url: str | None = None
    worker_count: int = Field(default=5, ge=1)
    worker_queue_capacity: int = Field(default=20, ge=1)
    visibility_timeout: int = Field(default=30, ge=0)
    max_messages: int = Field(default=10, ge=1, le=10)
    wait_time_seconds: int = Field(default=10, ge=0, le=20)
    poll_error_backoff: float = Field(default=1.0, ge=0)
    poll_join_timeout: float = Field(default=5.0, ge=0)
    pool_shutdown_timeout: float = Field(default=10.0, ge=0)

    # Primary store
    table_name: str = "transactions"
    id_index_name: str = "id-index"

    # Search index
    search_url: str = "mongodb://localhost:27017"
    search_database: str = "activity_feed"
    search_index: str = "activity_items"

    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ActivityFeedSettings:
        """Read ``ACTIVITY_FEED_*`` variables; unset ones keep their defaults."""
        env = os.environ if environ is None else environ
        values: dict[str, str] = {}
        for name in cls.model_fields:
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        try:
            return cls.model_validate(values)
        except PydanticValidationError as e:
            raise ConfigurationError(str(e)) from e

    def require_queue_url(self) -> str:
        """Return the queue URL or raise when the consumer cannot run without it."""
        if not self.queue_url:
            raise ConfigurationError(f"{ENV_PREFIX}QUEUE_URL is required")
        return self.queue_url

    def aws_client_kwargs(self) -> dict[str, str]:
        """Extra kwargs for aiobotocore ``create_client`` (endpoint override)."""
        if self.aws_endpoint_url:
            return {"endpoint_url": self.aws_endpoint_url}
        return {}
