"""
LLM gateway -- the single entry point the rest of the application uses.

The gateway speaks one contract for every provider:

  1. ``verify(config)`` probes the backend and lists models as a
     ``ProbeResult``.
  2. ``stream(config, messages, token)`` yields text fragments.
  3. ``choose_model(config, probe)`` keeps the configured model usable.

It keeps only construction-time settings.  Every call gets its own HTTP
client and buffers, so overlapping calls never share state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, AsyncIterator, Sequence

import httpx

from lumen.llm import engine, verifier
from lumen.llm.cancellation import CancellationToken
from lumen.llm.net import DEFAULT_TIMEOUT
from lumen.llm.providers.gemini import GenAIFactory
from lumen.llm.registry import known_models
from lumen.types import ChatMessage, ProbeResult, ProviderConfig

if TYPE_CHECKING:
    from lumen.config import LumenConfig


class LLMGateway:
    """
    Unified provider gateway.

    Parameters
    ----------
    page_secure:
        Whether the hosting page is served over HTTPS.  Plaintext endpoints
        are then reported as mixed-content blocked before any request.
    timeout:
        Request timeout in seconds for everything except the local probe,
        which has its own short bound.
    transport:
        Optional httpx transport, e.g. ``httpx.MockTransport`` in tests.
    genai_factory:
        Builds the Google Gen AI client from an API key.
    """

    def __init__(
        self,
        page_secure: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        genai_factory: GenAIFactory | None = None,
    ) -> None:
        self._page_secure = page_secure
        self._timeout = timeout
        self._transport = transport
        self._genai_factory = genai_factory

    @classmethod
    def from_config(cls, cfg: LumenConfig, **kwargs) -> LLMGateway:
        return cls(
            page_secure=cfg.gateway.page_secure,
            timeout=float(cfg.gateway.timeout_seconds),
            **kwargs,
        )

    @property
    def page_secure(self) -> bool:
        return self._page_secure

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def verify(self, config: ProviderConfig) -> ProbeResult:
        return await verifier.verify(
            config,
            client_factory=self._client,
            page_secure=self._page_secure,
            timeout=self._timeout,
        )

    def choose_model(self, config: ProviderConfig, probe: ProbeResult) -> ProviderConfig:
        return engine.choose_model(config, probe)

    def fallback_models(self, config: ProviderConfig, probe: ProbeResult | None) -> list[str]:
        """Models to offer: the probe's list, else the provider's known models."""
        if probe is not None and probe.success and probe.models:
            return list(probe.models)
        return known_models(config.provider)

    # ------------------------------------------------------------------
    # Streaming chat
    # ------------------------------------------------------------------

    def stream(
        self,
        config: ProviderConfig,
        messages: Sequence[ChatMessage],
        cancel_token: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        """Stream fragments for one chat turn.  Never raises for backend errors."""
        return engine.stream(
            config,
            messages,
            cancel_token,
            client_factory=self._client,
            genai_factory=self._genai_factory,
            page_secure=self._page_secure,
            timeout=self._timeout,
        )

    async def complete(
        self,
        config: ProviderConfig,
        messages: Sequence[ChatMessage],
        cancel_token: CancellationToken | None = None,
    ) -> str:
        """Consume the whole stream and return the joined text."""
        parts: list[str] = []
        async for fragment in self.stream(config, messages, cancel_token):
            parts.append(fragment)
        return "".join(parts)
