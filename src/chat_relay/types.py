"""Event types for the relay."""

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal

# Event is the union of everything a connection may receive for one request:
# - ChunkEvent: one text fragment from the upstream stream
# - DoneEvent: the stream completed normally (terminal)
# - ErrorEvent: the request failed (terminal)


@dataclass(frozen=True, slots=True)
class ChunkEvent:
    """Emitted for every fragment that carries text."""

    type: Literal["chunk"] = "chunk"
    text: str = ""

    def to_wire(self) -> str:
        return json.dumps({"type": self.type, "text": self.text})


@dataclass(frozen=True, slots=True)
class DoneEvent:
    """Emitted once when the upstream stream completes."""

    type: Literal["done"] = "done"

    def to_wire(self) -> str:
        return json.dumps({"type": self.type})


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    """Emitted once when a request fails. Never followed by DoneEvent."""

    type: Literal["error"] = "error"
    message: str = ""

    def to_wire(self) -> str:
        return json.dumps({"type": self.type, "message": self.message})


Event = ChunkEvent | DoneEvent | ErrorEvent

TERMINAL_TYPES = frozenset({"done", "error"})


@dataclass(frozen=True, slots=True)
class Fragment:
    """One unit of partial output from the upstream stream.

    payload is None for control items (traces, tool calls) that carry no text.
    """

    payload: bytes | None = None


@dataclass(slots=True)
class RelayResult:
    """Outcome of one relay entry point call.

    events holds every emitted event in order, whether or not the push
    reached the client.
    """

    status_code: int = 200
    events: list[Event] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status_code < 400


# Push primitive exposed by a Connection Gateway. May be sync or async.
# Returns False when the connection is gone.
Push = Callable[[str, str], bool | Awaitable[bool]]

# Listener for decoded outbound payloads on the client side.
Listener = Callable[[dict[str, Any]], Any]
