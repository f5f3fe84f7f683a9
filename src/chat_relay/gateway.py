"""Connection Gateway over FastAPI/Starlette WebSockets.

Owns every live connection and exposes the push primitive the relay uses.

Lifecycle:
    opening -> open -> closing -> closed

push() only succeeds for open connections. Sends to one connection are
serialized with a per-connection lock, so the relay may push many events in
quick succession without locking of its own.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from starlette.websockets import WebSocketDisconnect

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(eq=False)
class Connection:
    """One client connection. Only the gateway mutates it."""

    id: str
    websocket: WebSocket
    state: ConnectionState = ConnectionState.OPENING
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class WebSocketGateway:
    """Registry of open WebSocket connections keyed by connection id."""

    def __init__(self):
        self.connections: dict[str, Connection] = {}

    def __len__(self) -> int:
        return len(self.connections)

    def get(self, connection_id: str) -> Connection | None:
        return self.connections.get(connection_id)

    async def accept(self, websocket: WebSocket) -> Connection:
        """Accept the handshake and register the connection as open."""
        connection = Connection(id=uuid.uuid4().hex, websocket=websocket)
        self.connections[connection.id] = connection
        try:
            await websocket.accept()
        except Exception:
            self.connections.pop(connection.id, None)
            connection.state = ConnectionState.CLOSED
            raise
        connection.state = ConnectionState.OPEN
        logger.debug("Accepted connection %s", connection.id)
        return connection

    async def push(self, connection_id: str, payload: str) -> bool:
        """Send one payload. Returns False if the connection is gone."""
        connection = self.connections.get(connection_id)
        if connection is None or connection.state is not ConnectionState.OPEN:
            return False

        async with connection.lock:
            if connection.state is not ConnectionState.OPEN:
                return False
            try:
                await connection.websocket.send_text(payload)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                logger.info("Send to %s failed, marking closed: %s", connection_id, e)
                connection.state = ConnectionState.CLOSED
                return False
        return True

    async def close(self, connection_id: str) -> None:
        """Forget a connection. Safe to call more than once."""
        connection = self.connections.get(connection_id)
        if connection is None:
            return
        connection.state = ConnectionState.CLOSING
        async with connection.lock:
            connection.state = ConnectionState.CLOSED
            self.connections.pop(connection_id, None)
        logger.debug("Closed connection %s", connection_id)
