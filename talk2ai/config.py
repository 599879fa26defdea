"""Configuration management for the talk2ai backend."""

from __future__ import annotations

import logging
import os
from typing import Any, cast

import yaml
from dotenv import load_dotenv


class Configuration:
    """Layered configuration: packaged defaults, runtime overrides, environment."""

    def __init__(
        self,
        config_path: str | None = None,
        runtime_config_path: str | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for API keys
        self._config_path = config_path or os.path.join(os.path.dirname(__file__), "config.yaml")
        self._runtime_config_path = runtime_config_path or os.path.join(
            os.path.dirname(__file__), "runtime_config.yaml"
        )
        self._default_config = self._load_yaml_config(self._config_path)

        current = self._default_config
        if os.path.exists(self._runtime_config_path):
            current = self._deep_merge(current, self._load_runtime_config())
        if overrides:
            current = self._deep_merge(current, overrides)
        self._current_config: dict[str, Any] = current

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    @staticmethod
    def _load_yaml_config(config_path: str) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError("Configuration file must contain a dictionary")
            return cast(dict[str, Any], config)

    def _load_runtime_config(self) -> dict[str, Any]:
        """Load runtime overrides; an unreadable file is ignored."""
        try:
            with open(self._runtime_config_path) as file:
                config = yaml.safe_load(file)
        except (yaml.YAMLError, OSError) as e:
            logging.error(f"Ignoring unreadable runtime configuration: {e}")
            return {}
        if not isinstance(config, dict):
            logging.warning("Runtime configuration is not a dictionary, ignoring it")
            return {}
        return cast(dict[str, Any], config)

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(cast(dict[str, Any], result[key]), cast(dict[str, Any], value))
            else:
                result[key] = value

        return result

    def _get_config_value(self, path: list[str], default: Any = None) -> Any:
        """Get a configuration value by path."""
        current: Any = self._current_config
        for key in path:
            if isinstance(current, dict) and key in current:
                current = current[key]  # type: ignore[assignment]
            else:
                return default
        return current  # type: ignore[return-value]

    @property
    def llm_api_key(self) -> str:
        """Get the Groq API key.

        Raises:
            ValueError: If the API key is not found in environment variables.
        """
        env_key = self._get_config_value(["llm", "api_key_env"], "GROQ_API_KEY")
        api_key = os.getenv(env_key)
        if not api_key:
            raise ValueError(f"API key '{env_key}' not found in environment variables")
        return api_key

    def get_llm_config(self) -> dict[str, Any]:
        """Get LLM provider configuration.

        Returns:
            LLM configuration dictionary with validated values.
        """
        llm_config: dict[str, Any] = dict(self._current_config.get("llm", {}))
        if not llm_config.get("base_url"):
            raise ValueError("llm.base_url must be configured")

        max_retries = llm_config.get("max_retries", 3)
        if not isinstance(max_retries, int) or max_retries < 0:
            raise ValueError("llm.max_retries must be a non-negative integer")

        temperature = llm_config.get("default_temperature", 0.7)
        if not 0.0 <= float(temperature) <= 1.0:
            raise ValueError("llm.default_temperature must be between 0 and 1")

        if float(llm_config.get("timeout", 60.0)) <= 0:
            raise ValueError("llm.timeout must be positive")

        return llm_config

    def get_search_config(self) -> dict[str, Any]:
        """Get browser search transport configuration."""
        return self._current_config.get("llm", {}).get("search", {})

    def get_transcription_config(self) -> dict[str, Any]:
        """Get speech-to-text configuration."""
        return self._current_config.get("transcription", {})

    def get_chat_config(self) -> dict[str, Any]:
        """Get chat route configuration."""
        return self._current_config.get("chat", {})

    def get_stream_protocol(self) -> str:
        """Get the downstream stream format: 'ui' (SSE events) or 'text'."""
        protocol = self.get_chat_config().get("stream_protocol", "ui")
        if protocol not in ("ui", "text"):
            raise ValueError("chat.stream_protocol must be 'ui' or 'text'")
        return protocol

    def get_server_config(self) -> dict[str, Any]:
        """Get HTTP server configuration."""
        return self.get_chat_config().get("server", {})

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration."""
        return self._current_config.get("logging", {})
