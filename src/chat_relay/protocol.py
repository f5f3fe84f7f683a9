"""Inbound wire models.

TransportEvent is what a Connection Gateway hands to the router.
MessageBody is the JSON a client sends on the sendMessage route.
"""

from __future__ import annotations

import json
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field

CONNECT = "connect"
DISCONNECT = "disconnect"
SEND_MESSAGE = "sendMessage"
DEFAULT_ROUTE = "default"


class TransportEvent(BaseModel):
    """One notification from the Connection Gateway."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    route: str
    connection_id: str = Field(alias="connectionId", min_length=1)
    body: str | bytes | None = None


class MessageBody(BaseModel):
    """Client message body. Unknown fields (action, timestamp) are ignored."""

    model_config = ConfigDict(extra="ignore")

    message: Any = None
    text: Any = None

    @classmethod
    def parse(cls, raw: str | bytes | None) -> MessageBody:
        """Decode raw JSON. Anything malformed becomes an empty body."""
        if not raw:
            return cls()
        try:
            return cls.model_validate_json(raw)
        except pydantic.ValidationError:
            return cls()


def select_route(raw: str | bytes) -> str:
    """Route a WebSocket frame by its "action" field.

    Frames without a string action land on the default route.
    """
    try:
        payload = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return DEFAULT_ROUTE
    if isinstance(payload, dict) and isinstance(payload.get("action"), str):
        return payload["action"]
    return DEFAULT_ROUTE
