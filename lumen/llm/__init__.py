"""LLM subsystem -- provider registry, connection verifier and streaming engine."""

from lumen.llm.cancellation import CancellationToken
from lumen.llm.gateway import LLMGateway
from lumen.llm.registry import (
    ProviderCapability,
    Wire,
    detect_mixed_content,
    get_capability,
    known_models,
    list_providers,
    normalize_base_url,
    resolve_chat_endpoint,
    resolve_discovery_endpoint,
)

__all__ = [
    "CancellationToken",
    "LLMGateway",
    "ProviderCapability",
    "Wire",
    "detect_mixed_content",
    "get_capability",
    "known_models",
    "list_providers",
    "normalize_base_url",
    "resolve_chat_endpoint",
    "resolve_discovery_endpoint",
]
