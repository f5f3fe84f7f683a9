"""Upstream inference strategies.

Design:
    The relay talks to the model through one narrow interface:

        stream = await upstream.invoke(session_key, text)
        async for fragment in stream: ...

    invoke() may suspend for the remote call, then returns a lazy, finite,
    non-restartable stream of Fragment objects.

    Two strategies implement it:
    - AgentUpstream: OpenAI Agents SDK, Runner.run_streamed()
    - CannedUpstream: degraded mode with local canned replies (no network)

    Conversational context lives with the upstream, keyed by session key.
    The relay itself keeps no per-connection state.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections import Counter, OrderedDict
from collections.abc import AsyncIterator, Sequence
from typing import TYPE_CHECKING, Any, Protocol

from agents import Agent as SDKAgent
from agents import Runner, SQLiteSession
from openai.types.responses import ResponseTextDeltaEvent

from .types import Fragment
from .utils import serialize_output

if TYPE_CHECKING:
    from agents import RunResultStreaming

    from .config import RelayConfig

logger = logging.getLogger(__name__)

DEFAULT_REPLIES = (
    "Hi! I'm Buddy. I'm here to listen and support you. How are you feeling today?",
    "I understand how you feel. Those feelings are completely normal. "
    "Would you like to tell me more?",
    "You're very brave for sharing this with me. Remember there is always hope "
    "and you are not alone.",
    "I'm glad you trust me. Together we can find ways to help you feel better.",
)


class Upstream(Protocol):
    """Streaming inference call used by RelaySession."""

    name: str

    async def invoke(self, session_key: str, text: str) -> AsyncIterator[Fragment]: ...


class AgentUpstream:
    """Upstream backed by an OpenAI Agents SDK agent.

    Each session key gets its own in-memory SQLiteSession so the agent sees
    the conversation so far. Sessions are evicted least-recently-used once
    max_sessions is exceeded; nothing is written to disk.

    Example:
        agent = Agent(name="Buddy", instructions="Be kind.", model="gpt-5.2")
        upstream = AgentUpstream(agent)
        stream = await upstream.invoke("abc123", "hello")
        async for fragment in stream:
            print(fragment.payload.decode())
    """

    name = "agent"

    def __init__(
        self,
        agent: SDKAgent,
        *,
        max_sessions: int = 256,
        run_kwargs: dict[str, Any] | None = None,
    ):
        self.agent = agent
        self.max_sessions = max_sessions
        self.run_kwargs = dict(run_kwargs or {})
        self.sessions: OrderedDict[str, SQLiteSession] = OrderedDict()
        self.active: Counter[str] = Counter()

    def session_for(self, session_key: str) -> SQLiteSession:
        """Return the session for a key, creating it on first use.

        Sessions with a run in flight are never evicted; the cache may then
        hold more than max_sessions until those runs finish.
        """
        session = self.sessions.get(session_key)
        if session is None:
            session = SQLiteSession(session_key)
            self.sessions[session_key] = session
            self.evict(keep=session_key)
        else:
            self.sessions.move_to_end(session_key)
        return session

    def evict(self, keep: str | None = None) -> None:
        idle = [key for key in self.sessions if key != keep and not self.active[key]]
        for key in idle:
            if len(self.sessions) <= self.max_sessions:
                break
            self.sessions.pop(key).close()
            logger.debug("Evicted upstream session %s", key)

    async def invoke(self, session_key: str, text: str) -> AsyncIterator[Fragment]:
        session = self.session_for(session_key)
        result = Runner.run_streamed(self.agent, text, session=session, **self.run_kwargs)
        return self.fragments(session_key, result)

    async def fragments(
        self, session_key: str, result: RunResultStreaming
    ) -> AsyncIterator[Fragment]:
        """Translate SDK stream events into fragments.

        Only text deltas carry a payload. If the run streamed no text at all
        (structured output_type agents), the final output is sent as one
        fragment instead.

        Closing this generator early cancels the SDK run, so an abandoned
        reply does not keep writing to the session.
        """
        self.active[session_key] += 1
        events = result.stream_events()
        streamed_text = False
        try:
            async for event in events:
                if event.type != "raw_response_event":
                    yield Fragment()
                    continue
                if isinstance(event.data, ResponseTextDeltaEvent) and event.data.delta:
                    streamed_text = True
                    yield Fragment(payload=event.data.delta.encode("utf-8"))

            if not streamed_text and result.final_output is not None:
                output = serialize_output(result.final_output)
                if output:
                    yield Fragment(payload=output.encode("utf-8"))
        finally:
            if not result.is_complete:
                logger.info("Cancelling unfinished run for session %s", session_key)
                result.cancel()
            await events.aclose()
            self.active[session_key] -= 1
            if not self.active[session_key]:
                del self.active[session_key]


class CannedUpstream:
    """Degraded mode: stream a canned supportive reply word by word.

    Used when no real model is configured, and in tests. The reply is picked
    with a seedable random.Random so runs can be made reproducible.
    """

    name = "canned"

    def __init__(
        self,
        replies: Sequence[str] = DEFAULT_REPLIES,
        *,
        delay: float = 0.0,
        seed: int | None = None,
    ):
        if not replies:
            raise ValueError("CannedUpstream needs at least one reply")
        self.replies = tuple(replies)
        self.delay = delay
        self.rng = random.Random(seed)

    def pick(self) -> str:
        return self.rng.choice(self.replies)

    async def invoke(self, session_key: str, text: str) -> AsyncIterator[Fragment]:
        reply = self.pick()
        logger.debug("Canned reply for session %s", session_key)
        return self.fragments(reply)

    async def fragments(self, reply: str) -> AsyncIterator[Fragment]:
        words = reply.split(" ")
        for i, word in enumerate(words):
            if self.delay:
                await asyncio.sleep(self.delay)
            piece = word if i == len(words) - 1 else f"{word} "
            yield Fragment(payload=piece.encode("utf-8"))


def build_agent(config: RelayConfig) -> SDKAgent:
    """Create the SDK agent described by config."""
    return SDKAgent(
        name=config.agent_name,
        instructions=config.instructions,
        model=config.model,
    )


def build_upstream(config: RelayConfig) -> AgentUpstream | CannedUpstream:
    """Select the upstream strategy from config."""
    if config.mode == "canned":
        return CannedUpstream(delay=config.canned_delay)
    return AgentUpstream(build_agent(config), max_sessions=config.max_sessions)
