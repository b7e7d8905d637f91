"""
Frame decoders for the two HTTP streaming wire formats.

Both take the raw response byte stream and yield text fragments:

* ``ndjson_fragments`` -- one JSON object per line (local model server).
* ``sse_fragments`` -- Server-Sent Events ``data:`` frames carrying JSON
  (OpenAI-compatible endpoints), terminated by ``data: [DONE]``.

A frame that fails to decode is logged and skipped; it never ends the stream.
"""

from __future__ import annotations

import json
import logging
from typing import AsyncIterable, AsyncIterator

from lumen.errors import DecodeError
from lumen.llm.buffering import iter_lines

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


def error_fragment(message: str) -> str:
    """The terminal fragment used for every streaming failure."""
    return f"\n[Error: {message}]"


def _loads_object(raw: str) -> dict:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"invalid JSON frame: {raw[:200]}") from exc
    if not isinstance(data, dict):
        raise DecodeError(f"non-object frame: {raw[:200]}")
    return data


async def ndjson_fragments(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """
    Decode newline-delimited JSON chat output.

    ``message.content`` becomes a fragment.  An object carrying ``error`` ends
    the stream with an error fragment.
    """
    async for line in iter_lines(chunks):
        line = line.strip()
        if not line:
            continue

        try:
            data = _loads_object(line)
        except DecodeError as exc:
            logger.warning("ndjson: skipping frame (%s): %s", exc.code, exc)
            continue

        if data.get("error"):
            yield error_fragment(str(data["error"]))
            return

        message = data.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, str) and content:
            yield content


def _delta_content(data: dict) -> str | None:
    try:
        content = data["choices"][0]["delta"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    return content if isinstance(content, str) else None


async def sse_fragments(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """
    Decode an OpenAI-style SSE chat stream.

    Only ``data:`` lines are considered.  ``[DONE]`` is checked before any
    JSON decoding and ends the stream quietly.
    """
    async for line in iter_lines(chunks):
        line = line.strip()
        if not line.startswith(SSE_DATA_PREFIX):
            # Blank event boundaries, comments, event:/id: fields.
            continue

        payload = line[len(SSE_DATA_PREFIX):].strip()
        if payload == SSE_DONE:
            return

        try:
            data = _loads_object(payload)
        except DecodeError as exc:
            logger.warning("sse: skipping frame (%s): %s", exc.code, exc)
            continue

        content = _delta_content(data)
        if content:
            yield content
