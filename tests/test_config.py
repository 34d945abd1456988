"""Tests for layered config loading."""

from __future__ import annotations

import os

import pytest
import yaml

from modelgate.config import GatewayConfig, load_config, parse_vendor
from modelgate.errors import ConfigurationError
from modelgate.llm.types import Vendor

CONFIG = {
    "http": {"max_retries": 5, "request_timeout_seconds": 30},
    "prompts": {"system": "Be brief."},
    "models": [
        {
            "uid": "gpt",
            "api_url": "https://api.openai.com/v1/chat/completions",
            "api_key": "sk-abcdef123456",
            "model_name": "gpt-4o",
            "function_calling": True,
        },
        {
            "uid": "claude",
            "api_url": "https://proxy.example.com/messages",
            "api_key_env": "TEST_CLAUDE_KEY",
            "model_name": "claude-3-5-sonnet",
            "vendor": "anthropic",
            "temperature": 3,
        },
    ],
    "chat_model": "gpt",
    "profiles": {
        "fast": {"http": {"max_retries": 0}, "chat_model": "claude"},
    },
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("MODELGATE_"):
            monkeypatch.delenv(key)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "modelgate.yaml"
    path.write_text(yaml.safe_dump(CONFIG))
    return path


class TestDefaults:
    def test_no_file(self):
        cfg = load_config(None)
        assert cfg.http.max_retries == 3
        assert cfg.http.default_retry_after_seconds == 60.0
        assert cfg.anthropic.version == "2023-06-01"
        assert cfg.anthropic.max_tokens == 10_000
        assert cfg.models == []
        assert cfg.system_prompt() == ""

    def test_missing_file_uses_defaults(self, tmp_path):
        cfg = load_config(tmp_path / "absent.yaml")
        assert cfg.http.max_retries == 3


class TestFile:
    def test_sections_and_models(self, config_file, monkeypatch):
        monkeypatch.setenv("TEST_CLAUDE_KEY", "sk-from-env-999")
        cfg = load_config(config_file)

        assert cfg.http.max_retries == 5
        assert cfg.http.connect_timeout_seconds == 10.0
        assert cfg.system_prompt() == "Be brief."
        gpt, claude = cfg.models
        assert gpt.function_calling is True
        assert gpt.vendor is None
        assert claude.vendor is Vendor.ANTHROPIC
        assert claude.api_key == "sk-from-env-999"
        assert claude.temperature_value == pytest.approx(0.3)
        assert cfg.find_model("claude") is claude
        assert cfg.find_model("nope") is None

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_incomplete_model_rejected(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"models": [{"uid": "x"}]}))
        with pytest.raises(ConfigurationError, match="api_url"):
            load_config(path)

    def test_system_prompt_file(self, tmp_path):
        prompt = tmp_path / "system.txt"
        prompt.write_text("From a file.")
        path = tmp_path / "c.yaml"
        path.write_text(yaml.safe_dump({"prompts": {"system": "inline", "system_path": str(prompt)}}))
        assert load_config(path).system_prompt() == "From a file."


class TestPrecedence:
    def test_profile_overlays_file(self, config_file):
        cfg = load_config(config_file, profile="fast")
        assert cfg.http.max_retries == 0
        assert cfg.http.request_timeout_seconds == 30
        assert cfg.chat_model == "claude"

    def test_unknown_profile(self, config_file):
        with pytest.raises(ConfigurationError, match="Unknown profile"):
            load_config(config_file, profile="slow")

    def test_env_beats_profile(self, config_file, monkeypatch):
        monkeypatch.setenv("MODELGATE_MAX_RETRIES", "7")
        monkeypatch.setenv("MODELGATE_COMPLETION_ENABLED", "false")
        monkeypatch.setenv("MODELGATE_COMPLETION_TOOLS", "fs__read, fs__list")
        cfg = load_config(config_file, profile="fast")
        assert cfg.http.max_retries == 7
        assert cfg.completion.enabled is False
        assert cfg.completion.allowed_tools == ["fs__read", "fs__list"]

    def test_cli_beats_env(self, config_file, monkeypatch):
        monkeypatch.setenv("MODELGATE_CHAT_MODEL", "claude")
        cfg = load_config(config_file, cli_overrides={"chat_model": "gpt", "prompts.system": "cli"})
        assert cfg.chat_model == "gpt"
        assert cfg.system_prompt() == "cli"

    def test_session_override(self):
        cfg = GatewayConfig()
        cfg.set_override("http.max_retries", 1)
        assert cfg.http.max_retries == 1
        assert cfg.get_override("http.max_retries") == 1


class TestSerialization:
    def test_keys_masked(self, config_file):
        data = load_config(config_file).to_dict()
        assert "sk-abcdef123456" not in str(data)
        assert data["models"][1]["vendor"] == "anthropic"
        assert "_overrides" not in data

    def test_unmasked(self, config_file):
        data = load_config(config_file).to_dict(mask_keys=False)
        assert data["models"][0]["api_key"] == "sk-abcdef123456"


class TestParseVendor:
    def test_known(self):
        assert parse_vendor("Gemini") is Vendor.GEMINI
        assert parse_vendor(None) is None

    def test_unknown(self):
        with pytest.raises(ConfigurationError, match="Unknown vendor"):
            parse_vendor("mistral")
