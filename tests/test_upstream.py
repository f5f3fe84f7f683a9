"""Upstream strategy tests.

AgentUpstream runs against a fake SDK Runner; no model calls are made.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from agents import Agent as SDKAgent
from openai.types.responses import ResponseTextDeltaEvent
from pydantic import BaseModel

from chat_relay import AgentUpstream, CannedUpstream, RelaySession
from chat_relay.config import RelayConfig
from chat_relay.upstream import DEFAULT_REPLIES, build_upstream


def delta(text):
    return SimpleNamespace(
        type="raw_response_event",
        data=ResponseTextDeltaEvent.model_construct(delta=text, type="response.output_text.delta"),
    )


def run_item():
    return SimpleNamespace(type="run_item_stream_event", name="message_output_created")


class FakeResult:
    def __init__(self, events, final_output=None, fail_after=None):
        self.events = events
        self.final_output = final_output
        self.fail_after = fail_after
        self.is_complete = False
        self.cancelled = False
        self.events_closed = False

    def cancel(self):
        self.cancelled = True
        self.is_complete = True

    async def stream_events(self):
        try:
            for i, event in enumerate(self.events):
                if self.fail_after is not None and i == self.fail_after:
                    self.is_complete = True
                    raise RuntimeError("stream broke")
                yield event
            self.is_complete = True
        finally:
            self.events_closed = True


class FakeRunner:
    calls: list = []
    result: FakeResult | None = None

    @staticmethod
    def run_streamed(agent, text, **kwargs):
        FakeRunner.calls.append((agent, text, kwargs))
        return FakeRunner.result


@pytest.fixture
def fake_runner(monkeypatch):
    FakeRunner.calls = []
    FakeRunner.result = FakeResult([])
    monkeypatch.setattr("chat_relay.upstream.Runner", FakeRunner)
    return FakeRunner


@pytest.fixture
def sdk_agent():
    return SDKAgent(name="Buddy", instructions="Be kind.", model="gpt-5.2")


async def collect(stream):
    return [fragment async for fragment in stream]


class TestAgentUpstream:
    @pytest.mark.asyncio
    async def test_text_deltas_become_fragments(self, fake_runner, sdk_agent):
        fake_runner.result = FakeResult([delta("Hel"), run_item(), delta("lo"), delta("")])
        upstream = AgentUpstream(sdk_agent)

        fragments = await collect(await upstream.invoke("key1", "hi"))

        payloads = [f.payload for f in fragments if f.payload]
        assert payloads == [b"Hel", b"lo"]

    @pytest.mark.asyncio
    async def test_run_uses_session_for_key(self, fake_runner, sdk_agent):
        upstream = AgentUpstream(sdk_agent, run_kwargs={"max_turns": 3})

        await collect(await upstream.invoke("key1", "hi"))
        await collect(await upstream.invoke("key1", "again"))

        (agent, text, kwargs), (_, _, kwargs2) = fake_runner.calls
        assert agent is sdk_agent
        assert text == "hi"
        assert kwargs["max_turns"] == 3
        assert kwargs["session"] is kwargs2["session"]
        assert kwargs["session"].session_id == "key1"

    @pytest.mark.asyncio
    async def test_structured_output_sent_when_nothing_streamed(self, fake_runner, sdk_agent):
        class Mood(BaseModel):
            label: str

        fake_runner.result = FakeResult([run_item()], final_output=Mood(label="calm"))
        upstream = AgentUpstream(sdk_agent)

        fragments = await collect(await upstream.invoke("k", "hi"))

        assert [f.payload for f in fragments if f.payload] == [b'{"label":"calm"}']

    @pytest.mark.asyncio
    async def test_final_output_not_repeated_after_deltas(self, fake_runner, sdk_agent):
        fake_runner.result = FakeResult([delta("Hi")], final_output="Hi")
        upstream = AgentUpstream(sdk_agent)

        fragments = await collect(await upstream.invoke("k", "hi"))

        assert [f.payload for f in fragments if f.payload] == [b"Hi"]

    @pytest.mark.asyncio
    async def test_completed_run_not_cancelled(self, fake_runner, sdk_agent):
        fake_runner.result = FakeResult([delta("Hi")])
        upstream = AgentUpstream(sdk_agent)

        await collect(await upstream.invoke("k", "hi"))

        assert not fake_runner.result.cancelled
        assert fake_runner.result.events_closed
        assert not upstream.active

    @pytest.mark.asyncio
    async def test_abandoned_run_cancelled(self, fake_runner, sdk_agent):
        result = FakeResult([delta("one"), delta("two"), delta("three")])
        fake_runner.result = result

        def push(connection_id, payload):
            if '"chunk"' in payload:
                raise TypeError("broken transport")
            return True

        relay = RelaySession(upstream=AgentUpstream(sdk_agent), push=push)

        outcome = await relay.handle("conn", '{"message": "hi"}')

        assert outcome.status_code == 500
        assert result.cancelled
        assert result.events_closed

    @pytest.mark.asyncio
    async def test_in_flight_session_not_evicted(self, fake_runner, sdk_agent):
        fake_runner.result = FakeResult([delta("a"), delta("b")])
        upstream = AgentUpstream(sdk_agent, max_sessions=1)

        stream = await upstream.invoke("busy", "hi")
        await stream.__anext__()
        busy = upstream.sessions["busy"]
        upstream.session_for("other")

        assert upstream.sessions["busy"] is busy
        assert list(upstream.sessions) == ["busy", "other"]

        await stream.aclose()
        upstream.session_for("third")

        assert list(upstream.sessions) == ["third"]
        assert not upstream.active

    def test_sessions_evicted_lru(self, sdk_agent):
        upstream = AgentUpstream(sdk_agent, max_sessions=2)

        a = upstream.session_for("a")
        upstream.session_for("b")
        assert upstream.session_for("a") is a
        upstream.session_for("c")

        assert list(upstream.sessions) == ["a", "c"]

    @pytest.mark.asyncio
    async def test_relay_reports_stream_failure(self, fake_runner, sdk_agent, push_log):
        fake_runner.result = FakeResult([delta("one"), delta("two")], fail_after=1)
        relay = RelaySession(upstream=AgentUpstream(sdk_agent), push=push_log)

        result = await relay.handle("conn", '{"message": "hi"}')

        assert result.status_code == 500
        assert push_log.payloads() == [
            {"type": "chunk", "text": "one"},
            {"type": "error", "message": "stream broke"},
        ]


class TestCannedUpstream:
    @pytest.mark.asyncio
    async def test_streams_reply_word_by_word(self):
        upstream = CannedUpstream(["hello dear friend"])

        fragments = await collect(await upstream.invoke("k", "hi"))

        assert [f.payload for f in fragments] == [b"hello ", b"dear ", b"friend"]

    @pytest.mark.asyncio
    async def test_seeded_choice_is_reproducible(self):
        first = CannedUpstream(seed=7)
        second = CannedUpstream(seed=7)

        assert [first.pick() for _ in range(5)] == [second.pick() for _ in range(5)]
        assert first.pick() in DEFAULT_REPLIES

    @pytest.mark.asyncio
    async def test_relay_end_to_end(self, push_log):
        relay = RelaySession(upstream=CannedUpstream(["you are not alone"]), push=push_log)

        result = await relay.handle("c", '{"text": "I feel sad"}')

        assert result.status_code == 200
        chunks = [p["text"] for p in push_log.payloads() if p["type"] == "chunk"]
        assert "".join(chunks) == "you are not alone"
        assert push_log.payloads()[-1] == {"type": "done"}

    def test_requires_replies(self):
        with pytest.raises(ValueError):
            CannedUpstream([])


class TestBuildUpstream:
    def test_canned_mode(self):
        upstream = build_upstream(RelayConfig(mode="canned", canned_delay=0.5))

        assert isinstance(upstream, CannedUpstream)
        assert upstream.delay == 0.5

    def test_agent_mode(self):
        config = RelayConfig(mode="agent", model="gpt-5.2", agent_name="Buddy", max_sessions=9)

        upstream = build_upstream(config)

        assert isinstance(upstream, AgentUpstream)
        assert upstream.agent.name == "Buddy"
        assert upstream.agent.model == "gpt-5.2"
        assert upstream.max_sessions == 9
