"""
Connection verifier and model lister.

``verify`` never raises for an expected failure: every outcome, including a
missing key or a blocked plaintext endpoint, comes back as a ``ProbeResult``
whose ``message`` is written for a human.
"""

from __future__ import annotations

import logging

from lumen.errors import GatewayError, MissingCredential, MixedContentBlocked
from lumen.llm.net import DEFAULT_TIMEOUT, ClientFactory
from lumen.llm.registry import (
    ProviderCapability,
    detect_mixed_content,
    get_capability,
)
from lumen.types import ProbeResult, ProviderConfig

logger = logging.getLogger(__name__)


def prepare_discovery(
    capability: ProviderCapability,
    config: ProviderConfig,
    page_secure: bool,
) -> str:
    """
    Validate *config* for a probe and return the discovery URL.

    Raises a ``GatewayError`` subclass describing the first problem found.
    Runs before any network access.
    """
    if capability.requires_key and not (config.api_key or "").strip():
        raise MissingCredential("API Key is required.")

    endpoint = capability.discovery_url(config)

    blocked = detect_mixed_content(page_secure, endpoint)
    if blocked:
        raise MixedContentBlocked(blocked)
    return endpoint


async def verify(
    config: ProviderConfig,
    *,
    client_factory: ClientFactory,
    page_secure: bool = False,
    timeout: float = DEFAULT_TIMEOUT,
) -> ProbeResult:
    """Probe the configured backend and list its models."""
    capability = get_capability(config.provider)
    if capability is None:
        return ProbeResult(success=False, message="Unknown provider.")

    try:
        endpoint = prepare_discovery(capability, config, page_secure)
    except GatewayError as exc:
        logger.info("Probe for %s not attempted (%s): %s", config.provider, exc.code, exc)
        return ProbeResult(success=False, message=str(exc))

    headers = capability.auth_headers(config)
    try:
        async with client_factory(capability.discovery_timeout or timeout) as client:
            result = await capability.probe(client, config, endpoint, headers)
    except GatewayError as exc:
        logger.info("Probe for %s inconclusive (%s): %s", config.provider, exc.code, exc)
        return ProbeResult(success=False, message=str(exc))

    logger.info(
        "Probe %s: success=%s models=%d",
        capability.provider.value,
        result.success,
        len(result.models or []),
    )
    return result
