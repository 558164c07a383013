"""
Server-Sent Events framing.

Turns the raw byte stream of a response into complete events ("chunks").
Network reads can split an event, or a multi-byte character, anywhere.
"""
import codecs
import re
from typing import Iterator, List

DONE_SENTINEL = "[DONE]"

# Blank line between events. \r\n is normalised before splitting.
_EVENT_SEPARATOR = re.compile(r"\n[ \t]*\n")


def iter_sse_data(chunk: str) -> Iterator[str]:
    """
    Yield the value of every `data:` line in an event.

    Both `data: {...}` and `data:{...}` (DashScope) are accepted.
    """
    for line in chunk.splitlines():
        line = line.strip()
        if not line.startswith("data:"):
            continue
        value = line[len("data:"):].strip()
        if value:
            yield value


class SSEFramer:
    """Incremental bytes -> events splitter. One instance per response."""

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, data: bytes) -> List[str]:
        """Add bytes, return the events completed by them."""
        self._buffer += self._decoder.decode(data).replace("\r\n", "\n").replace("\r", "\n")

        events: List[str] = []
        while True:
            match = _EVENT_SEPARATOR.search(self._buffer)
            if not match:
                break
            event = self._buffer[:match.start()]
            self._buffer = self._buffer[match.end():]
            if event.strip():
                events.append(event)
        return events

    def flush(self) -> List[str]:
        """Return the trailing unterminated block, if any."""
        self._buffer += self._decoder.decode(b"", final=True)
        leftover, self._buffer = self._buffer, ""
        return [leftover] if leftover.strip() else []
