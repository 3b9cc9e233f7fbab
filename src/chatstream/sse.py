"""Incremental decoder for server-sent event streams."""

import codecs
import json
import re
from typing import Any, List, Optional, Union

from .models import StreamEvent

_LINE_END = re.compile(r"\r\n|\r|\n")
_BOM = "\ufeff"


class SSEDecoder:
    """
    Turns arbitrarily chunked bytes into complete server-sent events.

    Chunks do not need to line up with event, line or even character
    boundaries. Incomplete trailing input is buffered until the blank line
    that ends its event arrives.

    Usage:
        >>> decoder = SSEDecoder()
        >>> decoder.feed(b"data: hel")
        []
        >>> decoder.feed(b"lo\\n\\n")
        [StreamEvent(data='hello', event=None, id=None)]
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._encoding = encoding
        self.reset()

    def reset(self) -> None:
        """Drop all buffered input and start over, as for a new stream."""
        self._bytes = codecs.getincrementaldecoder(self._encoding)(errors="replace")
        self._buffer = ""
        self._started = False
        self._data: List[str] = []
        self._event_type: Optional[str] = None
        self.last_event_id: Optional[str] = None
        self.retry: Optional[int] = None

    def feed(self, chunk: Union[bytes, str]) -> List[StreamEvent]:
        """
        Add a chunk and return the events it completes, in stream order.

        Args:
            chunk: Raw bytes from the response body, or already decoded text.

        Returns:
            Every event whose terminating blank line is now available.
        """
        text = self._bytes.decode(chunk) if isinstance(chunk, bytes) else chunk
        if not self._started and text:
            self._started = True
            if text.startswith(_BOM):
                text = text[1:]
        self._buffer += text

        events = []
        while True:
            match = _LINE_END.search(self._buffer)
            if match is None:
                break
            # A lone trailing CR may be the first half of a CRLF.
            if match.group() == "\r" and match.end() == len(self._buffer):
                break
            line = self._buffer[: match.start()]
            self._buffer = self._buffer[match.end() :]
            event = self._process_line(line)
            if event is not None:
                events.append(event)
        return events

    def close(self) -> None:
        """Signal end of stream. A partial event that was never terminated is discarded."""
        self._bytes.decode(b"", final=True)
        self._buffer = ""
        self._data = []
        self._event_type = None

    def _process_line(self, line: str) -> Optional[StreamEvent]:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "data":
            self._data.append(value)
        elif field == "event":
            self._event_type = value
        elif field == "id":
            if "\0" not in value:
                self.last_event_id = value
        elif field == "retry":
            if value.isdigit():
                self.retry = int(value)
        return None

    def _dispatch(self) -> Optional[StreamEvent]:
        if not self._data:
            self._event_type = None
            return None
        event = StreamEvent(
            data="\n".join(self._data),
            event=self._event_type,
            id=self.last_event_id,
        )
        self._data = []
        self._event_type = None
        return event


def encode_event(data: Union[str, Any]) -> bytes:
    """Frame a payload as a single ``data:`` event. Non-string payloads are JSON encoded."""
    if not isinstance(data, str):
        data = json.dumps(data)
    lines = data.split("\n")
    return "".join(f"data: {line}\n" for line in lines).encode("utf-8") + b"\n"
