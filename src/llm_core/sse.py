"""Incremental Server-Sent-Events framing."""

from __future__ import annotations

import codecs
from collections.abc import AsyncIterable, AsyncIterator

EVENT_DELIMITER = "\n\n"
DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def _data_lines(event: str) -> list[str]:
    payloads: list[str] = []
    for line in event.split("\n"):
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            continue
        data = line[len(DATA_PREFIX) :]
        if data == DONE_SENTINEL:
            continue
        payloads.append(data)
    return payloads


class SSEDecoder:
    """Buffer raw bytes and emit ``data:`` payloads per complete event.

    Multi-byte UTF-8 sequences and CRLF pairs split across reads are
    reassembled before framing. The ``[DONE]`` sentinel is never emitted.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    @property
    def buffered(self) -> int:
        """Return the number of characters waiting for an event boundary."""
        return len(self._buffer)

    def feed(self, data: bytes) -> list[str]:
        """Consume one read and return payloads of every completed event."""
        self._buffer += self._decoder.decode(data)
        self._buffer = self._buffer.replace("\r\n", "\n")

        payloads: list[str] = []
        while True:
            position = self._buffer.find(EVENT_DELIMITER)
            if position == -1:
                break
            event = self._buffer[:position]
            self._buffer = self._buffer[position + len(EVENT_DELIMITER) :]
            payloads.extend(_data_lines(event))
        return payloads

    def flush(self) -> list[str]:
        """Return payloads left in the buffer after the source is exhausted."""
        self._buffer += self._decoder.decode(b"", final=True)
        remainder = self._buffer.replace("\r\n", "\n")
        self._buffer = ""
        if not remainder:
            return []
        return _data_lines(remainder)


async def iter_sse_data(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Yield SSE data payloads from an async byte stream."""
    decoder = SSEDecoder()
    async for chunk in chunks:
        if not chunk:
            continue
        for payload in decoder.feed(chunk):
            yield payload
    for payload in decoder.flush():
        yield payload
