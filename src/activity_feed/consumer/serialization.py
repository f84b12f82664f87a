"""EventSerializer: queue message body (JSON) to/from InboundEvent."""

from __future__ import annotations

import json

from pydantic import ValidationError as PydanticValidationError

from ..domain.models import InboundEvent
from ..exceptions import MessagingSerializationError


class EventSerializer:
    """Serialize/deserialize ``InboundEvent`` to/from JSON message bodies."""

    def serialize(self, event: InboundEvent) -> str:
        """Encode event to a camelCase JSON body."""
        try:
            return json.dumps(
                event.model_dump(mode="json", by_alias=True, exclude_none=True)
            )
        except (TypeError, ValueError) as e:
            raise MessagingSerializationError(str(e)) from e

    def deserialize(self, body: str | bytes) -> InboundEvent:
        """Decode a message body; malformed bodies raise MessagingSerializationError."""
        try:
            raw = body.decode("utf-8") if isinstance(body, bytes) else body
            data = json.loads(raw)
            return InboundEvent.model_validate(data)
        except (UnicodeDecodeError, json.JSONDecodeError, PydanticValidationError) as e:
            raise MessagingSerializationError(str(e)) from e
