"""
Local model server (Ollama wire protocol).

Discovery is ``GET /api/tags``; chat is ``POST /api/chat`` answered with
newline-delimited JSON.  The probe carries a hard timeout so an unreachable
local server never stalls the caller.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from lumen.llm.net import describe_error, is_unreachable
from lumen.types import ProbeResult, ProviderConfig

logger = logging.getLogger(__name__)

DISCOVERY_TIMEOUT = 3.0
POLL_INTERVAL = 30.0

ORIGINS_HINT = "(Ensure Ollama is running and OLLAMA_ORIGINS='*' is set)"

PROBE_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


def auth_headers(config: ProviderConfig) -> dict[str, str]:
    return {}


async def probe(
    client: httpx.AsyncClient,
    config: ProviderConfig,
    endpoint: str,
    headers: dict[str, str],
) -> ProbeResult:
    try:
        # No cookies or credentials travel with the probe.
        response = await asyncio.wait_for(
            client.get(endpoint, headers={**PROBE_HEADERS, **headers}),
            timeout=DISCOVERY_TIMEOUT,
        )
        if not response.is_success:
            return ProbeResult(
                success=False,
                message=f"Ollama connected but returned error: {response.status_code}",
            )
        models = [m["name"] for m in response.json()["models"]]
    except (
        httpx.HTTPError,
        httpx.InvalidURL,
        asyncio.TimeoutError,
        ValueError,
        KeyError,
        TypeError,
    ) as exc:
        logger.info("Ollama probe failed for %s: %r", endpoint, exc)
        message = describe_error(exc)
        if is_unreachable(exc):
            message = f"{message} {ORIGINS_HINT}"
        return ProbeResult(success=False, message=f"Connection Failed: {message}")

    return ProbeResult(
        success=True,
        message="Connected to Ollama successfully.",
        models=models,
    )
