"""Correlation context and structured (JSON line) logging."""

from __future__ import annotations

import contextlib
import json
import logging
import sys
import time
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator

_log = logging.getLogger(__name__)

# Correlation id of the message currently being processed (the inbound eventId).
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    """Get current correlation ID from context."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Set correlation ID in context."""
    _correlation_id.set(correlation_id)


@contextlib.contextmanager
def correlation_scope(correlation_id: str | None) -> Iterator[None]:
    """Bind *correlation_id* for the duration of the block."""
    token = _correlation_id.set(correlation_id)
    try:
        yield
    finally:
        _correlation_id.reset(token)


class StructuredLogger:
    """Emits JSON log entries with kind, outcome, duration and correlation_id."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._log = logger or _log

    def emit(self, kind: str, outcome: str, **fields: Any) -> None:
        try:
            entry: dict[str, Any] = {
                "kind": kind,
                "outcome": outcome,
                "correlation_id": get_correlation_id(),
            }
            entry.update(fields)
            self._log.info(json.dumps(entry, default=str))
        except Exception:  # noqa: BLE001
            _log.debug("Failed to emit structured log entry", exc_info=True)

    @contextlib.contextmanager
    def timed(self, kind: str, **fields: Any) -> Iterator[dict[str, Any]]:
        """Time the block and emit one entry when it ends.

        The yielded dict can be updated by the caller (e.g. to set
        ``outcome``); an exception escaping the block is reported as
        ``"failed"`` and re-raised.
        """
        start = time.monotonic()
        state: dict[str, Any] = {"outcome": "success"}
        try:
            yield state
        except BaseException:
            state["outcome"] = "failed"
            raise
        finally:
            duration_ms = round((time.monotonic() - start) * 1000, 2)
            outcome = state.pop("outcome")
            self.emit(kind, outcome, duration_ms=duration_ms, **fields, **state)


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger for the runnable entry point."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        stream=sys.stdout,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
