"""Incremental decoder for text/event-stream responses.

Framing rules:
- lines end with LF or CRLF
- a blank line terminates an event
- only ``data:`` fields carry payloads; several data lines in one event are
  joined with ``\n``; comment lines (``:``) and other fields are ignored
- a ``[DONE]`` payload ends the stream
"""

import json
from dataclasses import dataclass, field
from typing import Any

from sidebar_agent.telemetry import get_logger
from sidebar_agent.telemetry.events import STREAM_RECORD_SKIPPED

log = get_logger(__name__)

DONE_SENTINEL = "[DONE]"


@dataclass
class SSEEvent:
    """One blank-line terminated event."""

    data: str
    event: str | None = None

    @property
    def is_done(self) -> bool:
        """Whether this event is the end-of-stream sentinel."""
        return self.data.strip() == DONE_SENTINEL


@dataclass
class SSEDecoder:
    """Turns arbitrary text chunks into complete SSE events.

    Chunks may split lines or events anywhere; partial input is buffered
    until its terminating blank line arrives.
    """

    _buffer: str = ""
    _data_lines: list[str] = field(default_factory=list)
    _event_name: str | None = None

    def feed(self, chunk: str) -> list[SSEEvent]:
        """Consume a chunk and return the events it completed.

        Args:
            chunk: Decoded text from the transport.

        Returns:
            Events completed by this chunk, in arrival order.
        """
        self._buffer += chunk
        events: list[SSEEvent] = []
        while True:
            newline = self._buffer.find("\n")
            if newline < 0:
                break
            line = self._buffer[:newline].rstrip("\r")
            self._buffer = self._buffer[newline + 1 :]
            event = self._process_line(line)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[SSEEvent]:
        """Emit whatever is buffered when the transport closes.

        Returns:
            The trailing event if the stream ended without a blank line.
        """
        events: list[SSEEvent] = []
        if self._buffer:
            event = self._process_line(self._buffer.rstrip("\r"))
            self._buffer = ""
            if event is not None:
                events.append(event)
        event = self._dispatch()
        if event is not None:
            events.append(event)
        return events

    def _process_line(self, line: str) -> SSEEvent | None:
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            self._data_lines.append(value)
        elif name == "event":
            self._event_name = value
        return None

    def _dispatch(self) -> SSEEvent | None:
        if not self._data_lines:
            self._event_name = None
            return None
        event = SSEEvent(data="\n".join(self._data_lines), event=self._event_name)
        self._data_lines = []
        self._event_name = None
        return event


def parse_record(event: SSEEvent) -> dict[str, Any] | None:
    """Decode an event payload as a JSON object.

    Malformed payloads are skipped: they are logged at debug level and
    None is returned, never an exception.

    Args:
        event: A complete SSE event that is not the DONE sentinel.

    Returns:
        The decoded object, or None when the payload is not a JSON object.
    """
    try:
        record = json.loads(event.data)
    except json.JSONDecodeError:
        log.debug(STREAM_RECORD_SKIPPED, reason="invalid_json", preview=event.data[:80])
        return None
    if not isinstance(record, dict):
        log.debug(STREAM_RECORD_SKIPPED, reason="not_an_object", preview=event.data[:80])
        return None
    return record


def extract_delta(record: dict[str, Any]) -> dict[str, Any] | None:
    """Return ``choices[0].delta`` from a chat.completion.chunk record.

    Args:
        record: Decoded stream record.

    Returns:
        The delta object, or None if the record has none.
    """
    choices = record.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        return None
    delta = choice.get("delta")
    return delta if isinstance(delta, dict) else None
