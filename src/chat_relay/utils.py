"""Small pure helpers shared by the relay and its upstreams."""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel

SESSION_KEY_DISALLOWED = re.compile(r"[^0-9a-zA-Z._:-]")


def derive_session_key(connection_id: str) -> str:
    """Strip every character outside [0-9a-zA-Z._:-] from a connection id.

    Pure: the same id always yields the same key.
    """
    return SESSION_KEY_DISALLOWED.sub("", connection_id)


def coerce_text(value: Any) -> str:
    """Turn a body field into text. Non-scalar values count as absent."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    return ""


def serialize_output(output: Any) -> str:
    """Serialize agent output to string.

    Handles str, Pydantic models, and other types consistently.
    """
    if isinstance(output, str):
        return output
    elif isinstance(output, BaseModel):
        return output.model_dump_json()
    else:
        return str(output)
