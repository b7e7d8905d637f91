"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < profile < env vars < CLI flags

The loader is the stand-in for the editor's persisted settings store: it
supplies ``ProviderConfig`` values and never receives them back from the
gateway.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from lumen.types import DEFAULT_LOCAL_URL, DEFAULT_MODEL, ProviderConfig, ProviderId

# Environment variables consulted for a key when none is configured.
DEFAULT_KEY_ENVS: dict[ProviderId, str] = {
    ProviderId.OPENAI: "OPENAI_API_KEY",
    ProviderId.ANTHROPIC: "ANTHROPIC_API_KEY",
    ProviderId.GEMINI: "GEMINI_API_KEY",
    ProviderId.GROQ: "GROQ_API_KEY",
}


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class LLMSection:
    provider: str = ProviderId.LOCAL.value
    model: str = DEFAULT_MODEL
    base_url: str = ""
    api_key: str = ""
    api_key_env: str = ""


@dataclass
class GatewaySection:
    page_secure: bool = False
    timeout_seconds: float = 120.0
    poll_interval_seconds: float = 30.0


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class LumenConfig:
    llm: LLMSection = field(default_factory=LLMSection)
    gateway: GatewaySection = field(default_factory=GatewaySection)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    def api_key(self) -> str:
        """Configured key, falling back to the provider's environment variable."""
        if self.llm.api_key:
            return self.llm.api_key
        env_name = self.llm.api_key_env
        if not env_name:
            provider_id = ProviderId.parse(self.llm.provider)
            env_name = DEFAULT_KEY_ENVS.get(provider_id, "") if provider_id else ""
        return os.environ.get(env_name, "") if env_name else ""

    def provider_config(self) -> ProviderConfig:
        """Build the immutable value handed to the gateway."""
        base_url = self.llm.base_url or None
        if base_url is None and ProviderId.parse(self.llm.provider) is ProviderId.LOCAL:
            base_url = DEFAULT_LOCAL_URL
        return ProviderConfig(
            provider=self.llm.provider,
            api_key=self.api_key(),
            base_url=base_url,
            model_name=self.llm.model,
        )

    def to_dict(self) -> dict:
        d = asdict(self)
        if d["llm"].get("api_key"):
            d["llm"]["api_key"] = "***"
        return d


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_dotpath(obj: Any, dotpath: str, value: Any) -> None:
    """Walk obj via dotpath and set the final attribute."""
    parts = dotpath.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    setattr(obj, parts[-1], value)


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay into base, returning a new dict."""
    merged = dict(base)
    for k, v in overlay.items():
        if k in merged and isinstance(merged[k], dict) and isinstance(v, dict):
            merged[k] = _deep_merge(merged[k], v)
        else:
            merged[k] = v
    return merged


def _coerce(value: str, target_type: type) -> Any:
    """Coerce a string env value to the target type."""
    if target_type is bool:
        return value.lower() in ("1", "true", "yes", "on")
    if target_type is int:
        return int(value)
    if target_type is float:
        return float(value)
    return value


def _build_section(cls: type, raw: dict) -> Any:
    """Build a dataclass section from a raw dict, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in (raw or {}).items() if k in valid_fields}
    return cls(**filtered)


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "LUMEN_LLM_PROVIDER":          ("llm.provider", str),
    "LUMEN_LLM_MODEL":             ("llm.model", str),
    "LUMEN_LLM_BASE_URL":          ("llm.base_url", str),
    "LUMEN_LLM_API_KEY":           ("llm.api_key", str),
    "LUMEN_LLM_API_KEY_ENV":       ("llm.api_key_env", str),
    "LUMEN_GATEWAY_PAGE_SECURE":   ("gateway.page_secure", bool),
    "LUMEN_GATEWAY_TIMEOUT":       ("gateway.timeout_seconds", float),
    "LUMEN_GATEWAY_POLL_INTERVAL": ("gateway.poll_interval_seconds", float),
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def find_config_path() -> Path | None:
    """Find config file in standard locations."""
    candidates = [
        Path.cwd() / "lumen.yaml",
        Path.cwd() / "lumen.yml",
        Path.home() / ".config" / "lumen" / "config.yaml",
        Path.home() / ".lumen" / "config.yaml",
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> LumenConfig:
    """
    Build a LumenConfig by layering sources in precedence order:

        defaults  <  config file  <  profile  <  env vars  <  CLI flags

    Parameters
    ----------
    config_path : path to YAML config file (optional)
    profile : name of a profile to apply from the config file
    cli_overrides : dict of dotpath -> value CLI flag overrides
    """
    raw: dict[str, Any] = {}

    # --- 1. Config file ---
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.is_file():
            with p.open("r", encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
            raw = _deep_merge(raw, file_data)

    # --- 2. Profile overlay ---
    if profile and "profiles" in raw:
        profile_data = raw.get("profiles", {}).get(profile, {})
        if profile_data:
            raw = _deep_merge(raw, profile_data)

    # --- Build sections from raw ---
    cfg = LumenConfig(
        llm=_build_section(LLMSection, raw.get("llm", {})),
        gateway=_build_section(GatewaySection, raw.get("gateway", {})),
        profiles=raw.get("profiles", {}),
    )

    # --- 3. Env var overrides ---
    for env_var, (dotpath, target_type) in _ENV_MAP.items():
        val = os.environ.get(env_var)
        if val is not None:
            _apply_dotpath(cfg, dotpath, _coerce(val, target_type))

    # --- 4. CLI flag overrides ---
    if cli_overrides:
        for dotpath, value in cli_overrides.items():
            if value is not None:
                _apply_dotpath(cfg, dotpath, value)

    return cfg
