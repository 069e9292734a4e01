"""events.py — Stream records to typed events, and events to a reply.

Wire contract for one record of the message stream:

    {"type": "tool_use", "tool": "bash"}      # or "name": "bash"
    {"type": "text", "content": "Hel"}        # or "text": "Hel"

Field precedence is fixed per variant:
  - tool_use: first non-empty of "tool", "name"; else "Tool"
  - text:     first non-empty of "content", "text"; else ""

This shape is what the agent is believed to emit; it has not been
confirmed against every agent release. Anything else (unknown type,
non-object JSON, garbage) parses to None and is dropped.

The interpreter folds events into running state: a status line for
tool activity and an accumulated reply for text.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Callable, Union


# -- Status phases ------------------------------------------------------------

STATUS_IDLE = "Idle"
STATUS_THINKING = "Thinking..."
STATUS_EXITED = "Process Exited"

COMPLETION_MARKER = "✅ Task Completed."
DEFAULT_TOOL_NAME = "Tool"

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]|\x1b\][^\x07]*\x07")


def running_status(tool: str) -> str:
    return f"Running {tool}..."


def strip_ansi(text: str) -> str:
    """Remove terminal escape sequences (tool names can carry colour codes)."""
    return _ANSI_ESCAPE.sub("", text)


# -- Events -------------------------------------------------------------------


@dataclass(frozen=True)
class ToolUseEvent:
    """The agent started running a tool."""

    tool: str


@dataclass(frozen=True)
class TextEvent:
    """A fragment of the agent's reply text."""

    content: str


StreamEvent = Union[ToolUseEvent, TextEvent]


def _first_string(raw: dict, *keys: str, default: str) -> str:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, str) and value:
            return value
    return default


def parse_record(line: str) -> StreamEvent | None:
    """Parse one raw record into a StreamEvent.

    This is the single point where the wire format maps to our types.
    Returns None for anything that is not a recognized event.
    """
    if not line.strip():
        return None
    try:
        raw = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(raw, dict):
        return None

    kind = raw.get("type")
    if kind == "tool_use":
        return ToolUseEvent(tool=_first_string(raw, "tool", "name", default=DEFAULT_TOOL_NAME))
    if kind == "text":
        return TextEvent(content=_first_string(raw, "content", "text", default=""))
    return None


# -- Interpreter --------------------------------------------------------------


class StreamInterpreter:
    """Folds the events of one response into status updates and a reply.

    One interpreter per message turn. Records must be fed in stream order.
    """

    def __init__(self, on_status: Callable[[str], None] | None = None):
        self._on_status = on_status
        self._parts: list[str] = []
        self._status = STATUS_THINKING

    @property
    def status(self) -> str:
        return self._status

    @property
    def text(self) -> str:
        """Reply text accumulated so far."""
        return "".join(self._parts)

    def feed(self, record: str) -> StreamEvent | None:
        """Interpret one record. Returns the event, or None if dropped."""
        event = parse_record(record)
        if isinstance(event, ToolUseEvent):
            self._set_status(running_status(event.tool))
        elif isinstance(event, TextEvent):
            self._parts.append(event.content)
        return event

    def finish(self) -> str:
        """End of stream. Returns the reply to send to the chat."""
        self._set_status(STATUS_IDLE)
        text = self.text
        return text if text.strip() else COMPLETION_MARKER

    def _set_status(self, status: str) -> None:
        self._status = status
        if self._on_status:
            self._on_status(status)
