"""chat-relay - stream a managed agent's reply to a chat connection.

Each inbound message becomes exactly one upstream call, and the reply is
relayed back as ordered events:

    {"type": "chunk", "text": "..."}   zero or more
    {"type": "done"}                    or
    {"type": "error", "message": "..."} exactly one, always last

Key pieces:
- RelaySession: validate, invoke upstream once, forward fragments
- Router: connect / disconnect / sendMessage / unknown routes, status codes
- WebSocketGateway: owns connections and the push primitive
- AgentUpstream / CannedUpstream: swappable upstream strategies

Example:
    from chat_relay import CannedUpstream, RelaySession

    sent = []
    relay = RelaySession(upstream=CannedUpstream(), push=lambda cid, p: sent.append(p) or True)
    result = await relay.handle("conn-1", '{"message": "hello"}')
    # result.status_code == 200, sent[-1] == '{"type": "done"}'

Server:
    uv run chat-relay serve
"""

from .errors import ConfigError, DeliveryError, RelayError, UpstreamError, ValidationError
from .gateway import Connection, ConnectionState, WebSocketGateway
from .protocol import MessageBody, TransportEvent
from .router import Router
from .session import RelaySession, extract_text
from .types import ChunkEvent, DoneEvent, ErrorEvent, Event, Fragment, RelayResult
from .upstream import AgentUpstream, CannedUpstream, Upstream
from .utils import derive_session_key

__all__ = [
    "RelaySession",
    "Router",
    "WebSocketGateway",
    "Connection",
    "ConnectionState",
    "Upstream",
    "AgentUpstream",
    "CannedUpstream",
    "TransportEvent",
    "MessageBody",
    "Event",
    "ChunkEvent",
    "DoneEvent",
    "ErrorEvent",
    "Fragment",
    "RelayResult",
    "RelayError",
    "ValidationError",
    "UpstreamError",
    "DeliveryError",
    "ConfigError",
    "derive_session_key",
    "extract_text",
]
