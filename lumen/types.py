"""Core value types shared by the gateway, the config loader and the CLI."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Protocol, Sequence


class ProviderId(str, Enum):
    LOCAL = "local"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    GROQ = "groq"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: str | ProviderId) -> ProviderId | None:
        """
        Map a configured provider string to a ``ProviderId``.

        ``"ollama"`` is accepted as an alias for ``local``.  Unknown values
        return ``None`` so callers can report them instead of raising.
        """
        if isinstance(value, ProviderId):
            return value
        key = (value or "").strip().lower()
        if key == "ollama":
            return cls.LOCAL
        try:
            return cls(key)
        except ValueError:
            return None


DEFAULT_LOCAL_URL = "http://localhost:11434"
DEFAULT_MODEL = "llama3"


@dataclass(frozen=True)
class ProviderConfig:
    """
    Immutable provider settings handed to every gateway call.

    ``provider`` is kept as the raw configured string so that unknown
    providers travel through the gateway and get a readable answer.
    """

    provider: str = ProviderId.LOCAL.value
    api_key: str | None = None
    base_url: str | None = None
    model_name: str = ""

    @property
    def provider_id(self) -> ProviderId | None:
        return ProviderId.parse(self.provider)

    def with_model(self, model_name: str) -> ProviderConfig:
        return replace(self, model_name=model_name)


DEFAULT_PROVIDER_CONFIG = ProviderConfig(
    provider=ProviderId.LOCAL.value,
    api_key="",
    base_url=DEFAULT_LOCAL_URL,
    model_name=DEFAULT_MODEL,
)


@dataclass(frozen=True)
class ChatMessage:
    """A single message in a conversation."""

    role: str  # "user", "system", "assistant"
    content: str

    def to_wire(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a connection probe.  ``message`` is meant for humans."""

    success: bool
    message: str
    models: list[str] | None = None


class ConnectionStatus(str, Enum):
    CONNECTED = "connected"
    CHECKING = "checking"
    DISCONNECTED = "disconnected"

    @classmethod
    def from_probe(cls, result: ProbeResult) -> ConnectionStatus:
        return cls.CONNECTED if result.success else cls.DISCONNECTED


class ContentConverter(Protocol):
    """Markdown/HTML converter owned by the editor."""

    def to_display(self, raw: str) -> str: ...

    def to_storage(self, markup: str) -> str: ...


class PassthroughConverter:
    """Converter that leaves text untouched."""

    def to_display(self, raw: str) -> str:
        return raw

    def to_storage(self, markup: str) -> str:
        return markup


def convert_messages(
    messages: Sequence[ChatMessage],
    converter: ContentConverter,
) -> list[ChatMessage]:
    """Return new messages whose content went through ``to_storage``."""
    return [
        ChatMessage(role=m.role, content=converter.to_storage(m.content))
        for m in messages
    ]
