"""
OpenAI-compatible endpoints: OpenAI itself, Groq, and any custom server that
speaks ``/v1/models`` and ``/v1/chat/completions`` (vLLM, LM Studio,
LocalAI, Hugging Face TGI, ...).
"""

from __future__ import annotations

import logging

import httpx

from lumen.llm.net import describe_error
from lumen.types import ProbeResult, ProviderConfig

logger = logging.getLogger(__name__)

# Values users type into the key field to mean "no key".
PLACEHOLDER_KEYS = frozenset({"", "na"})

BODY_SNIPPET_CHARS = 100


def auth_headers(config: ProviderConfig) -> dict[str, str]:
    """
    Bearer auth only for a real key.

    Several local OpenAI-compatible servers reject a malformed
    ``Authorization`` header outright, so placeholders send nothing.
    """
    key = (config.api_key or "").strip()
    if key.lower() in PLACEHOLDER_KEYS:
        return {}
    return {"Authorization": f"Bearer {key}"}


async def probe(
    client: httpx.AsyncClient,
    config: ProviderConfig,
    endpoint: str,
    headers: dict[str, str],
) -> ProbeResult:
    provider_id = config.provider_id
    provider = provider_id.value if provider_id else config.provider
    try:
        response = await client.get(endpoint, headers=headers)
        if response.is_success:
            models = sorted(m["id"] for m in response.json()["data"])
            return ProbeResult(
                success=True,
                message=f"{provider[:1].upper()}{provider[1:]} API is valid.",
                models=models,
            )
        snippet = response.text[:BODY_SNIPPET_CHARS]
        return ProbeResult(
            success=False,
            message=(
                f"{provider} Error: {response.status_code} "
                f"{response.reason_phrase} - {snippet}"
            ),
        )
    except (httpx.HTTPError, httpx.InvalidURL, ValueError, KeyError, TypeError) as exc:
        logger.info("%s probe failed for %s: %r", provider, endpoint, exc)
        return ProbeResult(
            success=False,
            message=f"Network Error (CORS?): {describe_error(exc)}",
        )
