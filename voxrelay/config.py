"""Configuration system for VoxRelay.

Supports loading from YAML files, dicts, or the process environment via
Pydantic models. The config drives the listener address, the AI service
connection, and the per-call realtime session settings.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from voxrelay.core.session_config import GreetingConfig, SessionConfiguration


API_KEY_ENV = "OPENAI_API_KEY"
PORT_ENV = "PORT"


class ConfigError(ValueError):
    """Raised when the relay cannot start with the given configuration."""


class ListenerConfig(BaseModel):
    """Where the relay accepts Twilio Media Stream connections."""

    host: str = "0.0.0.0"
    port: int = 8080
    path: str = "/twilio-stream"


class AIConfig(BaseModel):
    """Connection settings for the realtime speech AI service."""

    url: str = "wss://api.openai.com/v1/realtime"
    model: str = "gpt-4o-realtime-preview-2024-10-01"
    api_key: str = ""
    beta_header: str = "realtime=v1"
    # Seconds from stream start until the AI session must be ready
    handshake_timeout: float = Field(default=10.0, gt=0)

    @property
    def endpoint(self) -> str:
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}model={self.model}"

    @property
    def masked_api_key(self) -> str:
        if not self.api_key:
            return "<unset>"
        return f"{self.api_key[:10]}..."


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"


class RelayConfig(BaseModel):
    """Top-level VoxRelay configuration.

    Examples:
        # Programmatic
        config = RelayConfig(ai=AIConfig(api_key="sk-..."))

        # From YAML
        config = RelayConfig.from_yaml("relay.yaml")

        # Shorthand
        config = RelayConfig.from_dict({
            "api_key": "sk-...",
            "listen_port": 8080,
            "voice": "verse",
        })
    """

    listener: ListenerConfig = Field(default_factory=ListenerConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    session: SessionConfiguration = Field(default_factory=SessionConfiguration)
    greeting: GreetingConfig = Field(default_factory=GreetingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> RelayConfig:
        """Load configuration from a YAML file."""
        path = Path(path)
        with path.open() as f:
            data = yaml.safe_load(f) or {}
        return cls._from_raw(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RelayConfig:
        """Load configuration from a dictionary.

        Supports both the full nested format and a flat shorthand format:

        Full format:
            {"listener": {"port": 8080}, "ai": {"api_key": "..."}}

        Shorthand format:
            {"listen_port": 8080, "api_key": "...", "voice": "alloy"}
        """
        return cls._from_raw(dict(data))

    @classmethod
    def _from_raw(cls, data: dict[str, Any]) -> RelayConfig:
        """Normalize and construct config from a raw dict."""
        flat_mappings = {
            "listen_host": ("listener", "host"),
            "listen_port": ("listener", "port"),
            "listen_path": ("listener", "path"),
            "api_key": ("ai", "api_key"),
            "model": ("ai", "model"),
            "ai_url": ("ai", "url"),
            "handshake_timeout": ("ai", "handshake_timeout"),
            "instructions": ("session", "instructions"),
            "voice": ("session", "voice"),
            "temperature": ("session", "temperature"),
            "log_level": ("logging", "level"),
        }

        for flat_key, (section, nested_key) in flat_mappings.items():
            if flat_key in data:
                section_data = dict(data.get(section) or {})
                section_data[nested_key] = data.pop(flat_key)
                data[section] = section_data

        return cls(**data)

    def apply_env(self, environ: dict[str, str] | None = None) -> RelayConfig:
        """Return a copy with ``OPENAI_API_KEY`` and ``PORT`` applied.

        The API key from the environment only fills an empty ``ai.api_key``;
        ``PORT`` always wins over the configured listener port, as it does on
        container platforms that assign the port.
        """
        environ = os.environ if environ is None else environ
        ai = self.ai
        listener = self.listener

        if not ai.api_key and environ.get(API_KEY_ENV):
            ai = ai.model_copy(update={"api_key": environ[API_KEY_ENV]})

        port = environ.get(PORT_ENV)
        if port:
            try:
                listener = listener.model_copy(update={"port": int(port)})
            except ValueError as e:
                raise ConfigError(f"{PORT_ENV} must be an integer, got {port!r}") from e

        return self.model_copy(update={"ai": ai, "listener": listener})

    def validate_for_run(self) -> None:
        """Check the settings a running relay cannot do without."""
        if not self.ai.api_key:
            raise ConfigError(
                f"An AI API key is required: set ai.api_key or the "
                f"{API_KEY_ENV} environment variable"
            )
        if not self.listener.path.startswith("/"):
            raise ConfigError(f"listener.path must start with '/': {self.listener.path!r}")


def load_config(source: str | Path | dict[str, Any] | RelayConfig | None = None) -> RelayConfig:
    """Load a RelayConfig from any supported source, then apply the environment.

    Args:
        source: A YAML file path (str/Path), a dict, an existing RelayConfig,
            or None for defaults plus environment.

    Returns:
        A RelayConfig instance.
    """
    if source is None:
        config = RelayConfig()
    elif isinstance(source, RelayConfig):
        config = source
    elif isinstance(source, dict):
        config = RelayConfig.from_dict(source)
    elif isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        config = RelayConfig.from_yaml(path)
    else:
        raise TypeError(f"Cannot load config from {type(source)}")
    return config.apply_env()


# Default YAML template for `voxrelay init`
DEFAULT_CONFIG_YAML = """\
# VoxRelay Configuration

listener:
  host: 0.0.0.0
  port: 8080              # overridden by $PORT when set
  path: /twilio-stream

ai:
  url: wss://api.openai.com/v1/realtime
  model: gpt-4o-realtime-preview-2024-10-01
  api_key: ""             # empty means read $OPENAI_API_KEY
  handshake_timeout: 10

session:
  voice: alloy
  input_audio_format: g711_ulaw
  output_audio_format: g711_ulaw
  instructions: >-
    You are a friendly voice assistant answering a phone call.
    Keep your answers short and conversational.
  turn_detection:
    type: server_vad
    threshold: 0.5
    prefix_padding_ms: 300
    silence_duration_ms: 500
  tool_choice: none
  temperature: 0.8

greeting:
  enabled: true
  instructions: 'Say the greeting immediately: "Hi! Thanks for calling. How can I help you today?"'

logging:
  level: INFO
"""
