"""WebSocket client for the relay.

Subscriptions are explicit lists: every on_*() call adds a listener and
returns a callable that removes it. Nothing is replaced behind the caller's
back.

Example:
    client = RelayClient("ws://127.0.0.1:8000/ws")
    await client.connect()
    async for payload in client.ask("hello"):
        print(payload)
    await client.disconnect()
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Callable
from datetime import datetime, timezone
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed

from .protocol import SEND_MESSAGE
from .types import TERMINAL_TYPES, Listener

logger = logging.getLogger(__name__)

ConnectionListener = Callable[[str], Any]
ErrorListener = Callable[[Exception], Any]


def subscribe(listeners: list, listener: Callable) -> Callable[[], None]:
    listeners.append(listener)

    def unsubscribe() -> None:
        if listener in listeners:
            listeners.remove(listener)

    return unsubscribe


class RelayClient:
    """Duplex chat connection with fan-out to subscribers."""

    def __init__(self, url: str):
        self.url = url
        self.ws: Any = None
        self.event_listeners: list[Listener] = []
        self.connection_listeners: list[ConnectionListener] = []
        self.error_listeners: list[ErrorListener] = []

    def on_event(self, listener: Listener) -> Callable[[], None]:
        return subscribe(self.event_listeners, listener)

    def on_connection(self, listener: ConnectionListener) -> Callable[[], None]:
        return subscribe(self.connection_listeners, listener)

    def on_error(self, listener: ErrorListener) -> Callable[[], None]:
        return subscribe(self.error_listeners, listener)

    @property
    def connected(self) -> bool:
        return self.ws is not None

    async def connect(self) -> None:
        self.ws = await websockets.connect(self.url)
        logger.info("Connected to %s", self.url)
        self.notify_connection("connected")

    async def disconnect(self) -> None:
        ws, self.ws = self.ws, None
        if ws is None:
            return
        await ws.close()
        self.notify_connection("disconnected")

    async def send_message(self, text: str) -> bool:
        """Send one chat message. False when not connected."""
        if self.ws is None:
            logger.warning("Cannot send message: not connected")
            return False
        body = {
            "action": SEND_MESSAGE,
            "message": text,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await self.ws.send(json.dumps(body))
        except ConnectionClosed as e:
            self.ws = None
            self.notify_error(e)
            self.notify_connection("disconnected")
            return False
        return True

    async def listen(self) -> None:
        """Read frames until the connection closes, fanning them out."""
        if self.ws is None:
            return
        try:
            async for frame in self.ws:
                self.dispatch(frame)
        except ConnectionClosed as e:
            self.notify_error(e)
        finally:
            if self.ws is not None:
                self.ws = None
                self.notify_connection("disconnected")

    async def ask(self, text: str) -> AsyncIterator[dict[str, Any]]:
        """Send text and yield decoded payloads up to the terminal event.

        Use either ask() or a running listen() loop on one client, not both.
        """
        if not await self.send_message(text):
            yield {"type": "error", "message": "Not connected"}
            return
        while True:
            try:
                frame = await self.ws.recv()
            except ConnectionClosed as e:
                self.ws = None
                self.notify_error(e)
                self.notify_connection("disconnected")
                yield {"type": "error", "message": "Connection closed"}
                return
            payload = self.dispatch(frame)
            if payload is None:
                continue
            yield payload
            if payload.get("type") in TERMINAL_TYPES:
                return

    def dispatch(self, frame: str | bytes) -> dict[str, Any] | None:
        """Decode one frame and hand it to every event listener."""
        try:
            payload = json.loads(frame)
        except ValueError as e:
            logger.error("Undecodable frame: %r", frame)
            self.notify_error(e)
            return None
        if not isinstance(payload, dict):
            self.notify_error(ValueError(f"Unexpected frame: {payload!r}"))
            return None
        for listener in list(self.event_listeners):
            listener(payload)
        return payload

    def notify_connection(self, status: str) -> None:
        for listener in list(self.connection_listeners):
            listener(status)

    def notify_error(self, error: Exception) -> None:
        for listener in list(self.error_listeners):
            listener(error)
