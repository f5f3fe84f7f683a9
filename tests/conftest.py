"""pytest configuration for chat-relay tests."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from chat_relay.types import Fragment  # noqa: E402


class ScriptedUpstream:
    """Upstream that replays fixed fragments, optionally failing.

    fail_at: raise after yielding this many fragments
    fail_on_invoke: raise from invoke() itself, before any stream exists
    """

    name = "scripted"

    def __init__(self, fragments=(), fail_at=None, fail_on_invoke=False, error=None):
        self.fragments = [
            f if isinstance(f, Fragment) else Fragment(payload=f) for f in fragments
        ]
        self.fail_at = fail_at
        self.fail_on_invoke = fail_on_invoke
        self.error = error or RuntimeError("model unavailable")
        self.calls: list[tuple[str, str]] = []
        self.consumed = 0
        self.closed = False

    async def invoke(self, session_key, text):
        self.calls.append((session_key, text))
        if self.fail_on_invoke:
            raise self.error
        return self.stream()

    async def stream(self):
        try:
            for i, fragment in enumerate(self.fragments):
                if self.fail_at is not None and i == self.fail_at:
                    raise self.error
                self.consumed += 1
                yield fragment
            if self.fail_at is not None and self.fail_at >= len(self.fragments):
                raise self.error
        finally:
            self.closed = True


@pytest.fixture
def scripted():
    return ScriptedUpstream


@pytest.fixture
def push_log():
    sent = []

    def push(connection_id, payload):
        sent.append((connection_id, payload))
        return True

    push.sent = sent
    push.payloads = lambda: [json.loads(p) for _, p in sent]
    return push


@pytest.fixture
def async_push_log():
    sent = []

    async def push(connection_id, payload):
        sent.append((connection_id, payload))
        return True

    push.sent = sent
    push.payloads = lambda: [json.loads(p) for _, p in sent]
    return push


@pytest.fixture
def gone_push():
    """Push to a connection that no longer exists."""
    attempts = []

    def push(connection_id, payload):
        attempts.append(payload)
        return False

    push.attempts = attempts
    return push
