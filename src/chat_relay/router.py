"""Router - relay entry point for transport events.

Routes:
    connect      -> acknowledged (200), no events
    disconnect   -> acknowledged (200), no events
    sendMessage  -> RelaySession.handle()
    anything else -> one error event "Unknown route <route>" (200)

An unexpected exception anywhere below is reported to the connection as a
best-effort error event and answered with 500.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .protocol import CONNECT, DISCONNECT, SEND_MESSAGE, TransportEvent
from .types import ErrorEvent, RelayResult

if TYPE_CHECKING:
    from .session import RelaySession

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal error"


class Router:
    """Dispatch transport events onto a RelaySession.

    Example:
        router = Router(RelaySession(upstream, gateway.push))
        result = await router.dispatch(
            TransportEvent(route="sendMessage", connection_id="c1", body='{"text": "hi"}')
        )
    """

    def __init__(self, session: RelaySession):
        self.session = session

    async def dispatch(self, event: TransportEvent) -> RelayResult:
        connection_id = event.connection_id
        try:
            if event.route == CONNECT:
                logger.info("Connection opened: %s", connection_id)
                return RelayResult()

            if event.route == DISCONNECT:
                logger.info("Connection closed: %s", connection_id)
                return RelayResult()

            if event.route == SEND_MESSAGE:
                return await self.session.handle(connection_id, event.body)

            logger.warning("Unknown route %s from %s", event.route, connection_id)
            result = RelayResult()
            error = ErrorEvent(message=f"Unknown route {event.route}")
            try:
                await self.session.emit(connection_id, error, result)
            except Exception:
                # The route is still answered; only the notice was lost.
                logger.warning("Could not report unknown route to %s", connection_id)
            return result

        except Exception as e:
            logger.exception("Relay error on %s", connection_id)
            result = RelayResult(status_code=500)
            error = ErrorEvent(message=str(e) or INTERNAL_ERROR_MESSAGE)
            try:
                await self.session.emit(connection_id, error, result)
            except Exception:
                # Last resort: the connection cannot even receive the error.
                logger.debug("Could not report relay error to %s", connection_id)
            return result
