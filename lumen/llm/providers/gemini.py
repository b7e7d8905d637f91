"""
Gemini via the Google Gen AI SDK (``google-genai``).

Model listing uses the public REST endpoint with the key in the query string.
Chat goes through the SDK's async streaming call; the leading system message
is passed as ``system_instruction`` rather than as a turn.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Callable, Sequence

import httpx
from google import genai
from google.genai import types as genai_types

from lumen.llm.cancellation import CancellationToken, cancellable
from lumen.llm.net import describe_error
from lumen.types import ChatMessage, ProbeResult, ProviderConfig

logger = logging.getLogger(__name__)

MODEL_PREFIX = "models/"

GenAIFactory = Callable[[str], Any]


def default_client_factory(api_key: str) -> genai.Client:
    return genai.Client(api_key=api_key)


def auth_headers(config: ProviderConfig) -> dict[str, str]:
    # The key travels as ``?key=`` on the discovery URL.
    return {}


def strip_model_prefix(name: str) -> str:
    return name[len(MODEL_PREFIX):] if name.startswith(MODEL_PREFIX) else name


async def probe(
    client: httpx.AsyncClient,
    config: ProviderConfig,
    endpoint: str,
    headers: dict[str, str],
) -> ProbeResult:
    try:
        response = await client.get(endpoint, headers=headers)
        if not response.is_success:
            return ProbeResult(
                success=False,
                message=f"Gemini Error: {response.reason_phrase}",
            )
        models = [strip_model_prefix(m["name"]) for m in response.json()["models"]]
    except (httpx.HTTPError, httpx.InvalidURL, ValueError, KeyError, TypeError) as exc:
        logger.info("Gemini probe failed: %r", exc)
        return ProbeResult(success=False, message=f"Network Error: {describe_error(exc)}")

    return ProbeResult(success=True, message="Gemini Key is valid.", models=models)


def to_contents(
    messages: Sequence[ChatMessage],
) -> tuple[str | None, list[dict]]:
    """
    Split a conversation into ``(system_instruction, contents)``.

    The first system message becomes the instruction; any later system
    messages are dropped.  ``assistant`` turns become ``model`` turns and the
    order of the remaining turns is preserved.
    """
    system: str | None = None
    contents: list[dict] = []
    for msg in messages:
        if msg.role == "system":
            if system is None:
                system = msg.content
            continue
        if msg.role not in ("user", "assistant"):
            continue
        contents.append({
            "role": "model" if msg.role == "assistant" else "user",
            "parts": [{"text": msg.content}],
        })
    return system, contents


async def stream_chat(
    config: ProviderConfig,
    model: str,
    messages: Sequence[ChatMessage],
    token: CancellationToken,
    client_factory: GenAIFactory | None = None,
) -> AsyncIterator[str]:
    client = (client_factory or default_client_factory)(config.api_key or "")
    system, contents = to_contents(messages)

    generation_config = None
    if system:
        generation_config = genai_types.GenerateContentConfig(system_instruction=system)

    response_stream = await token.race(
        client.aio.models.generate_content_stream(
            model=model,
            contents=contents,
            config=generation_config,
        )
    )
    chunks = cancellable(response_stream, token)
    try:
        async for chunk in chunks:
            text = getattr(chunk, "text", None)
            if text:
                yield text
    finally:
        await chunks.aclose()
