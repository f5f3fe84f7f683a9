"""RelaySession - one inbound message in, one ordered event stream out.

Design:
    handle(connection_id, raw_body) runs five steps:

    1. Parse: raw body -> MessageBody (malformed input -> empty body)
    2. Extract: "message" then "text", first non-empty after trimming wins
    3. Derive session key from the connection id
    4. Invoke upstream exactly once, forward each fragment as a chunk
    5. Push every event to the same connection

    Every call ends with exactly one terminal event:
    - done  -> status 200
    - error -> status 400 (no text) or 500 (upstream failure)

    Delivery failures (connection gone) are logged and swallowed. They never
    stop the remaining events and never change the status.

    No retries. No state is kept between calls, so handle() may run
    concurrently for different connections.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

from .errors import DeliveryError, UpstreamError, ValidationError
from .protocol import MessageBody
from .types import ChunkEvent, DoneEvent, ErrorEvent, Event, Fragment, RelayResult
from .utils import coerce_text, derive_session_key

if TYPE_CHECKING:
    from .types import Push
    from .upstream import Upstream

logger = logging.getLogger(__name__)

MISSING_TEXT_MESSAGE = "Missing 'message' or 'text'."
UPSTREAM_FAILED_MESSAGE = "Upstream invocation failed"


def extract_text(body: MessageBody) -> str:
    """Return the trimmed message text or raise ValidationError."""
    for value in (body.message, body.text):
        text = coerce_text(value).strip()
        if text:
            return text
    raise ValidationError(MISSING_TEXT_MESSAGE)


def decode_fragment(fragment: Fragment) -> str | None:
    """Decode a fragment payload. None when it carries no text."""
    if not fragment.payload:
        return None
    return fragment.payload.decode("utf-8")


class RelaySession:
    """Relay one message from a connection to the upstream and back.

    Example:
        relay = RelaySession(upstream=CannedUpstream(), push=gateway.push)
        result = await relay.handle("conn-1", '{"message": "hi"}')
        result.status_code  # 200
        result.events[-1]   # DoneEvent()
    """

    def __init__(self, upstream: Upstream, push: Push):
        self.upstream = upstream
        self.push = push

    async def handle(self, connection_id: str, raw_body: str | bytes | None) -> RelayResult:
        result = RelayResult()

        try:
            text = extract_text(MessageBody.parse(raw_body))
        except ValidationError as e:
            logger.info("Rejected message on %s: %s", connection_id, e)
            await self.emit(connection_id, ErrorEvent(message=str(e)), result)
            result.status_code = e.status_code
            return result

        session_key = derive_session_key(connection_id)
        logger.debug("Relaying %d chars for session %s", len(text), session_key)

        try:
            chunks = await self.stream(connection_id, session_key, text, result)
        except UpstreamError as e:
            logger.error("Upstream failed for %s: %s", connection_id, e.__cause__ or e)
            await self.emit(connection_id, ErrorEvent(message=str(e)), result)
            result.status_code = e.status_code
            return result

        await self.emit(connection_id, DoneEvent(), result)
        logger.info("Relayed %d chunks to %s", chunks, connection_id)
        return result

    async def stream(
        self, connection_id: str, session_key: str, text: str, result: RelayResult
    ) -> int:
        """Invoke the upstream once and forward its fragments in order.

        Returns the number of chunk events emitted. Any failure is re-raised
        as UpstreamError after the stream has been closed.
        """
        chunks = 0
        fragments: AsyncIterator[Fragment] | None = None
        try:
            fragments = await self.upstream.invoke(session_key, text)
            async for fragment in fragments:
                chunk = decode_fragment(fragment)
                if chunk is None:
                    continue
                await self.emit(connection_id, ChunkEvent(text=chunk), result)
                chunks += 1
        except Exception as e:
            raise UpstreamError(str(e) or UPSTREAM_FAILED_MESSAGE) from e
        finally:
            aclose = getattr(fragments, "aclose", None)
            if aclose is not None:
                await aclose()
        return chunks

    async def emit(self, connection_id: str, event: Event, result: RelayResult) -> None:
        """Record the event and push it. Delivery failures are swallowed."""
        result.events.append(event)
        try:
            delivered = self.push(connection_id, event.to_wire())
            if hasattr(delivered, "__await__"):
                delivered = await delivered
            if delivered is False:
                raise DeliveryError(connection_id)
        except DeliveryError as e:
            logger.warning("Dropped %s event: %s", event.type, e)
