"""
Streaming completion engine.

``stream`` turns a chat request into an async iterator of text fragments for
every provider wire format.  It does not raise for backend trouble: any
failure becomes one final ``"\\n[Error: ...]"`` fragment so the caller always
ends up with readable text.  Cancellation through the token ends the stream
quietly.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Sequence

import httpx

from lumen.errors import (
    BackendHTTPError,
    ErrorCode,
    GatewayError,
    MissingCredential,
    MixedContentBlocked,
    NetworkUnreachable,
)
from lumen.llm.cancellation import CancellationToken, StreamCancelled, cancellable
from lumen.llm.decoders import error_fragment
from lumen.llm.net import (
    DEFAULT_TIMEOUT,
    SERVER_HINT,
    ClientFactory,
    describe_error,
    is_unreachable,
    response_error_message,
)
from lumen.llm.providers import gemini
from lumen.llm.registry import (
    ProviderCapability,
    Wire,
    detect_mixed_content,
    get_capability,
)
from lumen.types import DEFAULT_MODEL, ChatMessage, ProbeResult, ProviderConfig

logger = logging.getLogger(__name__)

NOT_IMPLEMENTED = "Provider implementation not fully ready."


# ---------------------------------------------------------------------------
# Model selection
# ---------------------------------------------------------------------------

def model_name(config: ProviderConfig) -> str:
    return config.model_name or DEFAULT_MODEL


def choose_model(config: ProviderConfig, probe: ProbeResult) -> ProviderConfig:
    """
    Pick a usable model after a probe.

    If the probe listed models and the configured one is not among them, a new
    config selecting the first listed model is returned.  Otherwise *config*
    is returned unchanged.
    """
    if not probe.success or not probe.models:
        return config
    if config.model_name in probe.models:
        return config
    logger.info(
        "Model %r not offered by %s, switching to %r",
        config.model_name,
        config.provider,
        probe.models[0],
    )
    return config.with_model(probe.models[0])


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------

async def _http_stream(
    capability: ProviderCapability,
    config: ProviderConfig,
    messages: Sequence[ChatMessage],
    token: CancellationToken,
    client_factory: ClientFactory,
    page_secure: bool,
    timeout: float,
) -> AsyncIterator[str]:
    if capability.requires_key and not (config.api_key or "").strip():
        raise MissingCredential(f"{capability.label} API key is required.")

    url = capability.chat_url(config)
    blocked = detect_mixed_content(page_secure, url)
    if blocked:
        raise MixedContentBlocked(blocked)

    headers = {"Content-Type": "application/json", **capability.auth_headers(config)}
    if capability.wire is Wire.SSE:
        headers["Accept"] = "text/event-stream"

    body = {
        "model": model_name(config),
        "messages": [m.to_wire() for m in messages],
        "stream": True,
    }
    logger.info(
        "Chat request: provider=%s model=%s messages=%d",
        capability.provider.value,
        body["model"],
        len(messages),
    )

    async with client_factory(timeout) as client:
        request = client.build_request("POST", url, json=body, headers=headers)
        try:
            response = await token.race(client.send(request, stream=True))
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise NetworkUnreachable(f"{describe_error(exc)} {SERVER_HINT}") from exc
        try:
            if not response.is_success:
                await response.aread()
                raise BackendHTTPError(
                    response_error_message(response), response.status_code
                )
            fragments = cancellable(capability.decoder(response.aiter_bytes()), token)
            try:
                async for fragment in fragments:
                    yield fragment
            finally:
                await fragments.aclose()
        finally:
            await response.aclose()


def _dispatch(
    capability: ProviderCapability,
    config: ProviderConfig,
    messages: Sequence[ChatMessage],
    token: CancellationToken,
    client_factory: ClientFactory,
    genai_factory: gemini.GenAIFactory | None,
    page_secure: bool,
    timeout: float,
) -> AsyncIterator[str]:
    if capability.wire is Wire.SDK:
        if not (config.api_key or "").strip():
            raise MissingCredential(f"{capability.label} API key is required.")
        return gemini.stream_chat(
            config, model_name(config), messages, token, genai_factory
        )
    return _http_stream(
        capability, config, messages, token, client_factory, page_secure, timeout
    )


async def stream(
    config: ProviderConfig,
    messages: Sequence[ChatMessage],
    cancel_token: CancellationToken | None = None,
    *,
    client_factory: ClientFactory,
    genai_factory: gemini.GenAIFactory | None = None,
    page_secure: bool = False,
    timeout: float = DEFAULT_TIMEOUT,
) -> AsyncIterator[str]:
    """
    Stream a chat completion as text fragments.

    Yields each fragment as soon as its frame is decoded.  Ends when the
    backend finishes, when *cancel_token* fires, or after a single error
    fragment.
    """
    token = cancel_token or CancellationToken()
    capability = get_capability(config.provider)
    if capability is None or capability.wire is Wire.NONE:
        yield NOT_IMPLEMENTED
        return

    try:
        fragments = _dispatch(
            capability,
            config,
            messages,
            token,
            client_factory,
            genai_factory,
            page_secure,
            timeout,
        )
        try:
            async for fragment in fragments:
                yield fragment
                if token.cancelled:
                    return
        finally:
            await fragments.aclose()
    except StreamCancelled:
        logger.info("Stream for %s ended (%s)", capability.provider.value, ErrorCode.CANCELLED)
    except Exception as exc:
        if token.cancelled:
            # The abandoned read may surface as a transport error.
            logger.info(
                "Stream for %s ended (%s): %r",
                capability.provider.value,
                ErrorCode.CANCELLED,
                exc,
            )
            return
        if isinstance(exc, GatewayError):
            logger.warning("Stream for %s failed (%s): %s", capability.provider.value, exc.code, exc)
            yield error_fragment(str(exc))
            return
        logger.error("Streaming error (%s): %s", capability.provider.value, exc)
        message = describe_error(exc)
        if is_unreachable(exc):
            message = f"{message} {SERVER_HINT}"
        yield error_fragment(message)
