"""
Incremental Server-Sent Events decoder.

Network reads do not line up with SSE frames: a read may end in the middle of
a line or carry several frames at once. The decoder buffers partial input and
only emits complete events (terminated by a blank line).
"""

from dataclasses import dataclass
from typing import List, Optional

DONE_MARKER = "[DONE]"


@dataclass
class SSEEvent:
    """One dispatched SSE event."""
    data: str
    event: Optional[str] = None
    id: Optional[str] = None


class SSEDecoder:
    """Feed text as it arrives; collect complete events."""

    def __init__(self):
        self._buffer = ""
        self._data_lines: List[str] = []
        self._event: Optional[str] = None
        self._id: Optional[str] = None

    def feed(self, text: str) -> List[SSEEvent]:
        """Consume a piece of the stream and return the events it completed."""
        self._buffer += text
        events: List[SSEEvent] = []
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            event = self._process_line(line.rstrip("\r"))
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> List[SSEEvent]:
        """
        Dispatch whatever is left once the connection has closed.

        A final line without a newline, or data lines without the closing
        blank line, still form an event.
        """
        events: List[SSEEvent] = []
        if self._buffer:
            line, self._buffer = self._buffer, ""
            event = self._process_line(line.rstrip("\r"))
            if event is not None:
                events.append(event)
        event = self._dispatch()
        if event is not None:
            events.append(event)
        return events

    def _process_line(self, line: str) -> Optional[SSEEvent]:
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            # Comment / keep-alive line
            return None

        field_name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field_name == "data":
            self._data_lines.append(value)
        elif field_name == "event":
            self._event = value
        elif field_name == "id":
            self._id = value
        return None

    def _dispatch(self) -> Optional[SSEEvent]:
        if not self._data_lines:
            self._event = None
            return None
        event = SSEEvent(data="\n".join(self._data_lines), event=self._event, id=self._id)
        self._data_lines = []
        self._event = None
        return event
