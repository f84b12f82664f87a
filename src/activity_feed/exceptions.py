"""Exception hierarchy for the activity feed."""

from __future__ import annotations


class ActivityFeedError(Exception):
    """Root exception for the activity feed."""


class ValidationError(ActivityFeedError):
    """Raised when a client request is invalid.

    Carries structured errors: ``{field: [messages]}``.
    """

    def __init__(self, errors: dict[str, list[str]] | str | None = None) -> None:
        if isinstance(errors, str):
            self.errors: dict[str, list[str]] = {"__root__": [errors]}
        elif errors is None:
            self.errors = {}
        else:
            self.errors = errors
        super().__init__(str(self.errors))


class InvalidCursorError(ValidationError):
    """Raised when a pagination cursor is malformed or was not issued for this query."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__({"cursor": [reason]})


class NotFoundError(ActivityFeedError):
    """Raised when a resource is not found."""


class TransactionNotFoundError(NotFoundError):
    """Raised when no transaction matches the requested id."""

    def __init__(self, transaction_id: str) -> None:
        self.transaction_id = transaction_id
        super().__init__(f"Transaction with id={transaction_id!r} not found")


class ConfigurationError(ActivityFeedError):
    """Raised when settings are missing or invalid."""


class InfrastructureError(ActivityFeedError):
    """Base class for all infrastructure-related errors."""


class PersistenceError(InfrastructureError):
    """Base class for all persistence-related errors."""


class StoreError(PersistenceError):
    """Raised when the primary store rejects or fails an operation."""


class SearchIndexError(PersistenceError):
    """Raised when the search index fails an operation."""


class MessagingError(InfrastructureError):
    """Base class for all messaging-related infrastructure errors."""


class MessagingConnectionError(MessagingError):
    """Raised when connectivity to the queue fails."""


class MessagingSerializationError(MessagingError):
    """Raised when a queue message body cannot be decoded into an event."""


class EventProcessingError(ActivityFeedError):
    """Raised when an event cannot be applied; the message must not be acknowledged."""

    def __init__(self, message: str, event_id: str | None = None) -> None:
        self.event_id = event_id
        super().__init__(message)


class PoolShutdownError(ActivityFeedError):
    """Raised when a job is submitted to a worker pool that no longer accepts work."""
