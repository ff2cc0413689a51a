"""Tests for client configuration."""

import tempfile
from pathlib import Path

import pytest
import yaml

from heroku_inference.config import (
    AGENT_ENDPOINT,
    CHAT_ENDPOINT,
    DEFAULT_INFERENCE_URL,
    ClientConfig,
    build_url,
    load_config,
    resolve_config,
)
from heroku_inference.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("INFERENCE_KEY", "INFERENCE_URL", "INFERENCE_MODEL_ID"):
        monkeypatch.delenv(var, raising=False)


class TestClientConfig:
    def test_defaults(self):
        c = ClientConfig()
        assert c.api_url == DEFAULT_INFERENCE_URL
        assert c.max_retries == 2
        assert c.timeout is None
        assert c.streaming is False
        assert c.temperature == 1.0
        assert c.top_p == 0.999

    def test_url_for(self):
        c = ClientConfig(api_url="https://example.test/")
        assert c.url_for(CHAT_ENDPOINT) == "https://example.test/v1/chat/completions"
        assert c.url_for(AGENT_ENDPOINT) == "https://example.test/v1/agents/heroku"


class TestBuildUrl:
    def test_no_double_slash(self):
        assert build_url("https://h/", "/v1/x") == "https://h/v1/x"
        assert build_url("https://h", "/v1/x") == "https://h/v1/x"

    def test_empty_endpoint(self):
        assert build_url("https://h/", "") == "https://h"


class TestResolveConfig:
    def test_explicit_values(self):
        c = resolve_config(api_key="k", api_url="https://u", model="m")
        assert (c.api_key, c.api_url, c.model) == ("k", "https://u", "m")

    def test_env_fallback(self, monkeypatch):
        monkeypatch.setenv("INFERENCE_KEY", "env-key")
        monkeypatch.setenv("INFERENCE_URL", "https://env.test")
        monkeypatch.setenv("INFERENCE_MODEL_ID", "env-model")
        c = resolve_config()
        assert c.api_key == "env-key"
        assert c.api_url == "https://env.test"
        assert c.model == "env-model"

    def test_explicit_beats_env(self, monkeypatch):
        monkeypatch.setenv("INFERENCE_KEY", "env-key")
        c = resolve_config(api_key="arg-key", model="m")
        assert c.api_key == "arg-key"

    def test_default_url(self):
        c = resolve_config(api_key="k", model="m")
        assert c.api_url == DEFAULT_INFERENCE_URL

    def test_missing_key(self):
        with pytest.raises(ConfigError, match="INFERENCE_KEY"):
            resolve_config(model="m")

    def test_missing_model(self):
        with pytest.raises(ConfigError, match="INFERENCE_MODEL_ID"):
            resolve_config(api_key="k")

    def test_base_and_overrides(self):
        base = ClientConfig(api_key="base-key", model="base-model", max_retries=5)
        c = resolve_config(base=base, timeout=30.0)
        assert c.api_key == "base-key"
        assert c.max_retries == 5
        assert c.timeout == 30.0
        assert base.timeout is None

    def test_unknown_override(self):
        with pytest.raises(ConfigError, match="bogus"):
            resolve_config(api_key="k", model="m", bogus=1)


class TestLoadConfig:
    def test_missing_file_returns_defaults(self):
        c = load_config("/nonexistent/path.yaml")
        assert c == ClientConfig()

    def test_load_from_yaml(self):
        data = {
            "api_key": "yaml-key",
            "model": "claude-4-sonnet",
            "max_retries": 4,
            "timeout": 12.5,
            "streaming": True,
            "extra_params": {"seed": 7},
            "unknown_key": "ignored",
        }
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump(data, f)
            path = f.name

        c = load_config(path)
        assert c.api_key == "yaml-key"
        assert c.model == "claude-4-sonnet"
        assert c.max_retries == 4
        assert c.timeout == 12.5
        assert c.streaming is True
        assert c.extra_params == {"seed": 7}
        Path(path).unlink()

    def test_empty_yaml(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write("")
            path = f.name
        assert load_config(path) == ClientConfig()
        Path(path).unlink()

    def test_non_mapping_yaml(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write("- just\n- a list\n")
            path = f.name
        with pytest.raises(ConfigError):
            load_config(path)
        Path(path).unlink()

    def test_loaded_config_feeds_resolution(self, monkeypatch):
        monkeypatch.setenv("INFERENCE_KEY", "env-key")
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump({"model": "m", "api_url": "https://yaml.test"}, f)
            path = f.name
        c = resolve_config(base=load_config(path))
        assert c.api_key == "env-key"
        assert c.api_url == "https://yaml.test"
        Path(path).unlink()
