"""Incremental parser for the text/event-stream wire format."""

import codecs
from typing import Any, AsyncIterable, AsyncIterator, List, Optional

import orjson

from .models import SSEEvent

FRAME_SEPARATOR = '\n\n'
EVENT_PREFIX = 'event:'
DATA_PREFIX = 'data:'
ID_PREFIX = 'id:'
RETRY_PREFIX = 'retry:'


def decode_payload(text: str) -> Any:
    """Decode JSON payloads, keeping anything else as plain text."""
    try:
        return orjson.loads(text)
    except orjson.JSONDecodeError:
        return text


def parse_frame(frame: str) -> Optional[SSEEvent]:
    """Build an event from one blank-line delimited frame.

    Returns None for frames without a recognised field (comments, keep-alives).
    """
    event = SSEEvent()
    data_lines: List[str] = []
    seen = False

    for line in frame.split('\n'):
        if line.startswith(DATA_PREFIX):
            data_lines.append(line[len(DATA_PREFIX) :].strip())
            seen = True
        elif line.startswith(EVENT_PREFIX):
            event.event = line[len(EVENT_PREFIX) :].strip()
            seen = True
        elif line.startswith(ID_PREFIX):
            event.id = line[len(ID_PREFIX) :].strip()
            seen = True
        elif line.startswith(RETRY_PREFIX):
            value = line[len(RETRY_PREFIX) :].strip()
            if value.isascii() and value.isdigit():
                event.retry = int(value)
            seen = True

    if not seen:
        return None

    event.data = decode_payload('\n'.join(data_lines))
    return event


class SSEFrameParser:
    """Turns arbitrarily split byte chunks into complete events.

    Multi-byte characters split across chunks are held by the incremental
    decoder; an unterminated trailing frame stays buffered until more bytes
    arrive. When the stream ends that fragment is dropped, never emitted.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
        self._buffer = ''

    def feed(self, chunk: bytes) -> List[SSEEvent]:
        self._buffer += self._decoder.decode(chunk)
        self._buffer = self._buffer.replace('\r\n', '\n')

        *frames, self._buffer = self._buffer.split(FRAME_SEPARATOR)
        events = []
        for frame in frames:
            event = parse_frame(frame)
            if event is not None:
                events.append(event)
        return events

    def close(self) -> None:
        self._decoder.reset()
        self._buffer = ''

    @property
    def pending(self) -> str:
        return self._buffer


async def parse_sse_stream(chunks: AsyncIterable[bytes]) -> AsyncIterator[SSEEvent]:
    """Yield events from a byte stream until it completes.

    Read errors propagate to the caller; undecodable payloads never do.
    """
    parser = SSEFrameParser()
    try:
        async for chunk in chunks:
            for event in parser.feed(chunk):
                yield event
    finally:
        parser.close()
