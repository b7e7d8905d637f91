"""
Anthropic: model listing only.

Chat streaming for this provider is not implemented; the engine answers with
its "not ready" fragment.
"""

from __future__ import annotations

import logging

import httpx

from lumen.errors import CrossOriginBlocked
from lumen.types import ProbeResult, ProviderConfig

logger = logging.getLogger(__name__)

API_VERSION = "2023-06-01"

CORS_CAVEAT = (
    "Anthropic may block browser requests (CORS). "
    "This key might be valid but can't be tested here."
)


def auth_headers(config: ProviderConfig) -> dict[str, str]:
    return {
        "x-api-key": config.api_key or "",
        "anthropic-version": API_VERSION,
    }


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
                message=f"Anthropic Error: {response.status_code}",
            )
        models = [m["id"] for m in response.json()["data"]]
    except (httpx.HTTPError, httpx.InvalidURL, ValueError, KeyError, TypeError) as exc:
        # A blocked cross-origin request looks exactly like a bad key from
        # here, so the answer stays inconclusive.
        logger.debug("Anthropic probe failed: %r", exc)
        raise CrossOriginBlocked(CORS_CAVEAT) from exc

    return ProbeResult(success=True, message="Anthropic Key is valid.", models=models)
