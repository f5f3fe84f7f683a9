"""Client-side presentation of the relay event stream.

Transcript turns outbound events into chat messages:
    chunk -> cleaned text appended to the streaming assistant message
    done  -> streaming message marked complete
    error -> error notice appended

The event stream guarantees order and a single terminal event per request,
so appending is always correct.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

logger = logging.getLogger(__name__)

ACTION_TAG = re.compile(r"<action>.*?</action>")
BOT_PREFIX = re.compile(r"Bot:\s*")
ANSWER_TAG = re.compile(r"</?answer>")
BLANK_LINES = re.compile(r"\n\s*\n")

CRISIS_MESSAGE = """I'm really sorry you're feeling like this. You're not alone, and help is available right now.

📞 Línea 192 – Option 4 (Colombia): free and confidential emotional support, 24 hours a day.
📞 Línea 106 (Bogotá): crisis and suicide-prevention line.
💬 You can also send a WhatsApp message to +57 316 893 2673 for confidential chat support.

If you are in immediate danger, please reach out to someone you trust or go to the nearest emergency room."""

CONNECTION_ERROR_TEXT = "Sorry, there was a connection error. Please try again."


def needs_crisis_resources(text: str) -> bool:
    """True for the agent's placeholder or generic hotline answers."""
    return "{PHONE}" in text or ("Suicide" in text and "Hotline" in text)


def clean_text(text: str) -> str:
    """Strip agent markup from a chunk and localize crisis answers."""
    cleaned = ACTION_TAG.sub("", text)
    cleaned = BOT_PREFIX.sub("", cleaned)
    cleaned = ANSWER_TAG.sub("", cleaned)
    cleaned = BLANK_LINES.sub("\n", cleaned)
    cleaned = cleaned.strip()
    if needs_crisis_resources(cleaned):
        return CRISIS_MESSAGE
    return cleaned


@dataclass
class Message:
    sender: Literal["user", "assistant"]
    text: str
    raw: str = ""
    streaming: bool = False
    error: bool = False


TranscriptListener = Callable[["Transcript"], Any]


class Transcript:
    """Ordered chat messages built from outbound events.

    Listeners are kept in a list; subscribe() returns a callable that removes
    that one listener again.
    """

    def __init__(self):
        self.messages: list[Message] = []
        self.listeners: list[TranscriptListener] = []

    def subscribe(self, listener: TranscriptListener) -> Callable[[], None]:
        self.listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self.listeners:
                self.listeners.remove(listener)

        return unsubscribe

    def notify(self) -> None:
        for listener in list(self.listeners):
            listener(self)

    @property
    def last(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    @property
    def streaming(self) -> bool:
        last = self.last
        return last is not None and last.sender == "assistant" and last.streaming

    def add_user(self, text: str) -> Message:
        message = Message(sender="user", text=text)
        self.messages.append(message)
        self.notify()
        return message

    def apply(self, payload: dict[str, Any]) -> None:
        """Fold one decoded outbound payload into the transcript."""
        kind = payload.get("type")
        if kind == "chunk":
            self.append_chunk(str(payload.get("text") or ""))
        elif kind == "done":
            self.finish()
        elif kind == "error":
            self.finish()
            self.messages.append(
                Message(
                    sender="assistant",
                    text=str(payload.get("message") or CONNECTION_ERROR_TEXT),
                    error=True,
                )
            )
        else:
            logger.debug("Ignoring payload of type %r", kind)
            return
        self.notify()

    def append_chunk(self, raw: str) -> None:
        # Cleanup runs over the whole raw reply; tags may span chunks.
        if self.streaming:
            message = self.messages[-1]
            message.raw += raw
            message.text = clean_text(message.raw)
        else:
            self.messages.append(
                Message(sender="assistant", text=clean_text(raw), raw=raw, streaming=True)
            )

    def finish(self) -> None:
        if self.streaming:
            self.messages[-1].streaming = False
