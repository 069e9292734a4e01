"""frames.py — Newline framing for the agent's streamed response body.

The agent answers a message with a chunked HTTP body of newline-delimited
JSON. Chunk boundaries are arbitrary: one chunk may carry three records,
or half of one. The decoder turns chunks into whole lines.

Rules:
  - Every segment before a newline is a complete record.
  - The segment after the last newline is carried over to the next chunk.
  - At end of stream, a non-empty carry-over is emitted as a final record.

Nothing is parsed here. A record is raw text; the interpreter decides
whether it is JSON.

Usage:
    async for record in iter_records(response_chunks):
        interpreter.feed(record)
"""

from __future__ import annotations

import codecs
from typing import AsyncIterator


class LineDecoder:
    """Incremental splitter. Feed chunks, get back completed lines."""

    def __init__(self):
        self._buffer = ""
        # Multi-byte characters can straddle two byte chunks
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def pending(self) -> str:
        """The carried-over partial record."""
        return self._buffer

    def feed(self, chunk: bytes | str) -> list[str]:
        """Append a chunk and return every record it completes."""
        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)
        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return lines

    def flush(self) -> list[str]:
        """End of stream. Returns the trailing record, if any."""
        self._buffer += self._utf8.decode(b"", final=True)
        tail, self._buffer = self._buffer, ""
        return [tail] if tail else []


async def iter_records(chunks: AsyncIterator[bytes | str]) -> AsyncIterator[str]:
    """Yield records from an async stream of chunks, in arrival order."""
    decoder = LineDecoder()
    async for chunk in chunks:
        for line in decoder.feed(chunk):
            yield line
    for line in decoder.flush():
        yield line
