"""
Incremental line reassembly for streamed response bodies.

Bytes are decoded with an incremental UTF-8 decoder so a multi-byte character
split across two reads survives.  Only the trailing, possibly incomplete line
is kept between reads.
"""

from __future__ import annotations

import codecs
from typing import AsyncIterable, AsyncIterator


class LineBuffer:
    """Turn arbitrary byte chunks into complete text lines."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._partial = ""

    @property
    def pending(self) -> str:
        """The incomplete line currently held back."""
        return self._partial

    def feed(self, chunk: bytes) -> list[str]:
        """Add *chunk* and return every line it completed (without ``\\n``)."""
        text = self._partial + self._decoder.decode(chunk)
        *lines, self._partial = text.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> str:
        """Return whatever is left once the body has ended."""
        tail = self._partial + self._decoder.decode(b"", final=True)
        self._partial = ""
        return tail.rstrip("\r")


async def iter_lines(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Yield complete lines from *chunks*, then the unterminated tail if any."""
    buffer = LineBuffer()
    async for chunk in chunks:
        for line in buffer.feed(chunk):
            yield line
    tail = buffer.flush()
    if tail:
        yield tail
