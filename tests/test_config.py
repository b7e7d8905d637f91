"""Tests for the layered config loader."""

import pytest
import yaml

from lumen.config import LumenConfig, load_config
from lumen.types import DEFAULT_LOCAL_URL, DEFAULT_PROVIDER_CONFIG


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "LUMEN_LLM_PROVIDER",
        "LUMEN_LLM_MODEL",
        "LUMEN_LLM_BASE_URL",
        "LUMEN_LLM_API_KEY",
        "LUMEN_LLM_API_KEY_ENV",
        "LUMEN_GATEWAY_PAGE_SECURE",
        "LUMEN_GATEWAY_TIMEOUT",
        "LUMEN_GATEWAY_POLL_INTERVAL",
        "OPENAI_API_KEY",
        "GEMINI_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "lumen.yaml"
    path.write_text(yaml.safe_dump({
        "llm": {"provider": "openai", "model": "gpt-4o", "api_key_env": "MY_OPENAI_KEY"},
        "gateway": {"timeout_seconds": 30, "unknown_key": 1},
        "profiles": {
            "lab": {"llm": {"provider": "custom", "base_url": "https://vllm.lab:8000", "model": "qwen"}},
        },
    }))
    return path


class TestDefaults:

    def test_default_local_config(self):
        cfg = load_config()
        provider_config = cfg.provider_config()
        assert provider_config.provider == "local"
        assert provider_config.model_name == "llama3"
        assert provider_config.base_url == DEFAULT_LOCAL_URL
        assert provider_config.api_key == ""

    def test_dataclass_defaults_match_provider_default(self):
        assert LumenConfig().provider_config() == DEFAULT_PROVIDER_CONFIG

    def test_missing_file_is_ignored(self, tmp_path):
        cfg = load_config(tmp_path / "nope.yaml")
        assert cfg.llm.provider == "local"


class TestLayering:

    def test_file_values(self, config_file, monkeypatch):
        monkeypatch.setenv("MY_OPENAI_KEY", "sk-from-env")
        cfg = load_config(config_file)
        assert cfg.llm.provider == "openai"
        assert cfg.gateway.timeout_seconds == 30
        assert cfg.api_key() == "sk-from-env"

    def test_profile_overlay(self, config_file):
        cfg = load_config(config_file, profile="lab")
        provider_config = cfg.provider_config()
        assert provider_config.provider == "custom"
        assert provider_config.base_url == "https://vllm.lab:8000"
        assert provider_config.model_name == "qwen"

    def test_env_overrides_file(self, config_file, monkeypatch):
        monkeypatch.setenv("LUMEN_LLM_MODEL", "gpt-4-turbo")
        monkeypatch.setenv("LUMEN_GATEWAY_PAGE_SECURE", "true")
        monkeypatch.setenv("LUMEN_GATEWAY_TIMEOUT", "12.5")
        cfg = load_config(config_file)
        assert cfg.llm.model == "gpt-4-turbo"
        assert cfg.gateway.page_secure is True
        assert cfg.gateway.timeout_seconds == 12.5

    def test_cli_overrides_env(self, config_file, monkeypatch):
        monkeypatch.setenv("LUMEN_LLM_MODEL", "from-env")
        cfg = load_config(config_file, cli_overrides={"llm.model": "from-cli", "llm.base_url": None})
        assert cfg.llm.model == "from-cli"
        assert cfg.llm.base_url == ""

    def test_unknown_profile_ignored(self, config_file):
        cfg = load_config(config_file, profile="missing")
        assert cfg.llm.provider == "openai"
        assert cfg.llm.base_url == ""


class TestApiKey:

    def test_explicit_key_wins(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        cfg = load_config(cli_overrides={"llm.provider": "openai", "llm.api_key": "sk-explicit"})
        assert cfg.api_key() == "sk-explicit"

    def test_provider_default_env(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "AIza-env")
        cfg = load_config(cli_overrides={"llm.provider": "gemini"})
        assert cfg.provider_config().api_key == "AIza-env"

    def test_no_key_for_local(self):
        assert load_config().api_key() == ""

    def test_to_dict_masks_key(self):
        cfg = load_config(cli_overrides={"llm.api_key": "sk-secret"})
        d = cfg.to_dict()
        assert d["llm"]["api_key"] == "***"
        assert set(d) == {"llm", "gateway", "profiles"}
