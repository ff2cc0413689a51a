"""Configuration for the Heroku inference client.

Config discovery (first match wins):
  1. explicit ``path`` argument
  2. ``./heroku_inference.yaml``
  3. ``~/.config/heroku-inference/config.yaml``
  4. Built-in defaults

Credential, base URL and model fall back to the ``INFERENCE_KEY``,
``INFERENCE_URL`` and ``INFERENCE_MODEL_ID`` environment variables.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from heroku_inference.errors import ConfigError

_logger = logging.getLogger(__name__)

DEFAULT_INFERENCE_URL = "https://us.inference.heroku.com"
CHAT_ENDPOINT = "/v1/chat/completions"
AGENT_ENDPOINT = "/v1/agents/heroku"

ENV_API_KEY = "INFERENCE_KEY"
ENV_API_URL = "INFERENCE_URL"
ENV_MODEL = "INFERENCE_MODEL_ID"


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

@dataclass
class ClientConfig:
    """Connection and sampling defaults for an :class:`InferenceClient`."""

    api_key: str = ""
    api_url: str = DEFAULT_INFERENCE_URL
    model: str = ""
    temperature: float = 1.0
    top_p: float = 0.999
    stop: list[str] | None = None
    max_tokens: int | None = None
    max_retries: int = 2
    timeout: float | None = None  # seconds, per attempt
    streaming: bool = False
    extra_params: dict[str, Any] = field(default_factory=dict)

    def url_for(self, endpoint: str) -> str:
        return build_url(self.api_url, endpoint)


def build_url(base: str, endpoint: str) -> str:
    """Join *base* and *endpoint* without doubling the slash."""
    if base.endswith("/"):
        base = base[:-1]
    return f"{base}{endpoint}"


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def resolve_config(
    api_key: str | None = None,
    api_url: str | None = None,
    model: str | None = None,
    base: ClientConfig | None = None,
    **overrides: Any,
) -> ClientConfig:
    """Fill credential, URL and model from arguments, then env, then *base*.

    Raises
    ------
    ConfigError
        If no API key or model can be found.
    """
    cfg = base or ClientConfig()
    unknown = set(overrides) - {f.name for f in fields(ClientConfig)}
    if unknown:
        raise ConfigError(f"Unknown config options: {', '.join(sorted(unknown))}")

    resolved_key = api_key or os.environ.get(ENV_API_KEY) or cfg.api_key
    if not resolved_key:
        raise ConfigError(
            "Heroku API key not found. Please set the INFERENCE_KEY "
            "environment variable or pass it to the constructor."
        )
    resolved_url = api_url or os.environ.get(ENV_API_URL) or cfg.api_url
    resolved_model = model or os.environ.get(ENV_MODEL) or cfg.model
    if not resolved_model:
        raise ConfigError(
            "Heroku model ID not found. Please set it in the constructor, "
            "or set the INFERENCE_MODEL_ID environment variable."
        )

    return replace(
        cfg,
        api_key=resolved_key,
        api_url=resolved_url or DEFAULT_INFERENCE_URL,
        model=resolved_model,
        **overrides,
    )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./heroku_inference.yaml"),
    Path.home() / ".config" / "heroku-inference" / "config.yaml",
]


def _parse_config(raw: dict[str, Any]) -> ClientConfig:
    known = {f.name for f in fields(ClientConfig)}
    values = {k: v for k, v in raw.items() if k in known and v is not None}
    for k in raw:
        if k not in known:
            _logger.warning("Ignoring unknown config key: %s", k)
    return ClientConfig(**values)


def load_config(path: str | Path | None = None) -> ClientConfig:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Returns
    -------
    ClientConfig
        Not yet env-resolved; pass it to :func:`resolve_config` as ``base``.
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s, using defaults", path)
            return ClientConfig()
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found, using defaults")
        return ClientConfig()

    _logger.info("Loading config from %s", config_path)
    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    return _parse_config(raw)
