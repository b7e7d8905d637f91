"""
Provider registry and capability resolver.

Every provider is one ``ProviderCapability`` record in ``CAPABILITIES``:
where to discover models, where to chat, how to authenticate, which wire
format the chat stream uses and how to probe the backend.  Nothing here does
I/O; the verifier and the engine dispatch on these records.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterable, AsyncIterator, Awaitable, Callable
from urllib.parse import quote

import httpx

from lumen.errors import MissingCredential, MissingEndpoint
from lumen.llm.decoders import ndjson_fragments, sse_fragments
from lumen.llm.providers import anthropic, gemini, ollama, openai_compat
from lumen.types import ProbeResult, ProviderConfig, ProviderId

OPENAI_API = "https://api.openai.com/v1"
GROQ_API = "https://api.groq.com/openai/v1"
ANTHROPIC_API = "https://api.anthropic.com/v1"
GEMINI_API = "https://generativelanguage.googleapis.com/v1beta"

LOOPBACK = "127.0.0.1"

_LOCALHOST_RE = re.compile(
    r"^(?P<prefix>(?:[a-z][a-z0-9+.\-]*://)?(?:[^@/]*@)?)localhost(?=[:/?#]|$)",
    re.IGNORECASE,
)


class Wire(str, Enum):
    NDJSON = "ndjson"
    SSE = "sse"
    SDK = "sdk"
    NONE = "none"


Decoder = Callable[[AsyncIterable[bytes]], AsyncIterator[str]]
ProbeFn = Callable[
    [httpx.AsyncClient, ProviderConfig, str, dict[str, str]],
    Awaitable[ProbeResult],
]


@dataclass(frozen=True)
class ProviderCapability:
    provider: ProviderId
    label: str
    wire: Wire
    discovery_url: Callable[[ProviderConfig], str]
    chat_url: Callable[[ProviderConfig], str] | None
    auth_headers: Callable[[ProviderConfig], dict[str, str]]
    probe: ProbeFn
    decoder: Decoder | None = None
    requires_key: bool = True
    requires_base_url: bool = False
    discovery_timeout: float | None = None
    poll_interval: float | None = None
    known_models: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def normalize_base_url(url: str) -> str:
    """
    Strip trailing slashes and rewrite a ``localhost`` host to ``127.0.0.1``.

    Browsers treat the alias and the numeric address as different origins,
    so a local server's CORS allowlist only matches one of them.
    """
    clean = (url or "").strip().rstrip("/")
    return _LOCALHOST_RE.sub(lambda m: m.group("prefix") + LOOPBACK, clean, count=1)


def detect_mixed_content(page_is_secure: bool, target_url: str) -> str | None:
    """Diagnostic text when a secure page would call a plaintext endpoint."""
    if not page_is_secure:
        return None
    # Only the scheme matters; a malformed host is reported by the probe.
    scheme, _, _ = target_url.strip().partition("://")
    if scheme.lower() != "http":
        return None
    return (
        "Security Error: You are accessing this app via HTTPS but trying to "
        f"connect to an insecure HTTP server ({target_url}). Browsers block "
        "this. Please run this web app on HTTP (http://localhost:...) or use "
        "a tunneling service (ngrok) for the server."
    )


def _require_base(config: ProviderConfig, label: str) -> str:
    if not (config.base_url or "").strip():
        raise MissingEndpoint(f"Base URL is required for {label} provider.")
    return normalize_base_url(config.base_url or "")


def _require_key(config: ProviderConfig) -> str:
    key = (config.api_key or "").strip()
    if not key:
        raise MissingCredential("API Key is required.")
    return key


# ---------------------------------------------------------------------------
# Capability table
# ---------------------------------------------------------------------------

CAPABILITIES: dict[ProviderId, ProviderCapability] = {
    ProviderId.LOCAL: ProviderCapability(
        provider=ProviderId.LOCAL,
        label="Ollama",
        wire=Wire.NDJSON,
        discovery_url=lambda c: f"{_require_base(c, 'Ollama')}/api/tags",
        chat_url=lambda c: f"{_require_base(c, 'Ollama')}/api/chat",
        auth_headers=ollama.auth_headers,
        probe=ollama.probe,
        decoder=ndjson_fragments,
        requires_key=False,
        requires_base_url=True,
        discovery_timeout=ollama.DISCOVERY_TIMEOUT,
        poll_interval=ollama.POLL_INTERVAL,
    ),
    ProviderId.OPENAI: ProviderCapability(
        provider=ProviderId.OPENAI,
        label="OpenAI",
        wire=Wire.SSE,
        discovery_url=lambda c: f"{OPENAI_API}/models",
        chat_url=lambda c: f"{OPENAI_API}/chat/completions",
        auth_headers=openai_compat.auth_headers,
        probe=openai_compat.probe,
        decoder=sse_fragments,
        known_models=("gpt-4o", "gpt-4-turbo", "gpt-3.5-turbo"),
    ),
    ProviderId.GROQ: ProviderCapability(
        provider=ProviderId.GROQ,
        label="Groq",
        wire=Wire.SSE,
        discovery_url=lambda c: f"{GROQ_API}/models",
        chat_url=lambda c: f"{GROQ_API}/chat/completions",
        auth_headers=openai_compat.auth_headers,
        probe=openai_compat.probe,
        decoder=sse_fragments,
    ),
    ProviderId.CUSTOM: ProviderCapability(
        provider=ProviderId.CUSTOM,
        label="Custom",
        wire=Wire.SSE,
        discovery_url=lambda c: f"{_require_base(c, 'Custom')}/v1/models",
        chat_url=lambda c: f"{_require_base(c, 'Custom')}/v1/chat/completions",
        auth_headers=openai_compat.auth_headers,
        probe=openai_compat.probe,
        decoder=sse_fragments,
        requires_key=False,
        requires_base_url=True,
    ),
    ProviderId.ANTHROPIC: ProviderCapability(
        provider=ProviderId.ANTHROPIC,
        label="Anthropic",
        wire=Wire.NONE,
        discovery_url=lambda c: f"{ANTHROPIC_API}/models",
        chat_url=None,
        auth_headers=anthropic.auth_headers,
        probe=anthropic.probe,
        known_models=(
            "claude-3-5-sonnet-latest",
            "claude-3-opus-latest",
            "claude-3-haiku-20240307",
        ),
    ),
    ProviderId.GEMINI: ProviderCapability(
        provider=ProviderId.GEMINI,
        label="Gemini",
        wire=Wire.SDK,
        discovery_url=lambda c: (
            f"{GEMINI_API}/models?key={quote(_require_key(c), safe='')}"
        ),
        chat_url=None,
        auth_headers=gemini.auth_headers,
        probe=gemini.probe,
        known_models=("gemini-2.5-flash", "gemini-3-pro-preview"),
    ),
}


def get_capability(provider: str | ProviderId) -> ProviderCapability | None:
    """Return the record for *provider*, or ``None`` if it is unknown."""
    provider_id = ProviderId.parse(provider)
    if provider_id is None:
        return None
    return CAPABILITIES[provider_id]


def list_providers() -> list[ProviderCapability]:
    return list(CAPABILITIES.values())


def known_models(provider: str | ProviderId) -> list[str]:
    capability = get_capability(provider)
    return list(capability.known_models) if capability else []


def resolve_discovery_endpoint(config: ProviderConfig) -> str:
    """
    Model-listing URL for *config*.

    Raises ``KeyError`` for unknown providers and ``MissingEndpoint`` /
    ``MissingCredential`` when the URL cannot be built.
    """
    capability = get_capability(config.provider)
    if capability is None:
        raise KeyError(f"Unknown provider {config.provider!r}")
    return capability.discovery_url(config)


def resolve_chat_endpoint(config: ProviderConfig) -> str | None:
    """Chat-completion URL for *config*, ``None`` when chat is not over HTTP."""
    capability = get_capability(config.provider)
    if capability is None:
        raise KeyError(f"Unknown provider {config.provider!r}")
    if capability.chat_url is None:
        return None
    return capability.chat_url(config)


def build_auth_headers(config: ProviderConfig) -> dict[str, str]:
    capability = get_capability(config.provider)
    return capability.auth_headers(config) if capability else {}
