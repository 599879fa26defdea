"""
Chat Logging Utilities

Shared logging functionality with feature control: hierarchical module
configuration, feature flags, and directional flow logging.
"""

from __future__ import annotations

import logging
import time
from typing import Any

logger = logging.getLogger(__name__)

LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Module-to-logger mapping used by configure_logging
MODULE_LOGGER_MAP: dict[str, dict[str, Any]] = {
    "chat": {
        "loggers": ["talk2ai.chat", "talk2ai.server", "talk2ai.main"],
        "default_level": "INFO",
        "features": ["stream_events", "llm_requests"],
    },
    "clients": {
        "loggers": ["talk2ai.clients"],
        "default_level": "INFO",
        "features": ["http_requests", "fallbacks"],
    },
    "frontend": {
        "loggers": ["talk2ai.frontend"],
        "default_level": "WARNING",
        "features": ["stream_events", "http_requests"],
    },
}

_module_features: dict[str, dict[str, bool]] = {}


def configure_logging(logging_config: dict[str, Any]) -> None:
    """
    Hierarchical logging configuration with per-module levels and feature flags.

    Levels are set on parent loggers so children inherit them; feature flags
    are cached for should_log_feature().
    """
    global_level = logging_config.get("level", "WARNING")
    logging.getLogger().setLevel(LEVEL_MAP.get(global_level, logging.WARNING))

    if "format" in logging_config:
        for handler in logging.getLogger().handlers:
            if isinstance(handler, logging.StreamHandler):
                handler.setFormatter(logging.Formatter(logging_config["format"]))

    _module_features.clear()
    modules_config = logging_config.get("modules", {})

    for module_name, module_config in modules_config.items():
        if not isinstance(module_config, dict):
            continue

        mapping = MODULE_LOGGER_MAP.get(module_name, {})
        module_level = module_config.get("level", mapping.get("default_level", global_level))
        level_value = LEVEL_MAP.get(module_level, logging.WARNING)

        for logger_name in mapping.get("loggers", []):
            logging.getLogger(logger_name).setLevel(level_value)

        _module_features[module_name] = dict(module_config.get("enable_features", {}))


def should_log_feature(module: str, feature: str) -> bool:
    """Check if a specific logging feature is enabled (cached flags, no I/O)."""
    return bool(_module_features.get(module, {}).get(feature, False))


def log_directional_flow(direction: str, component: str, message: str, *args: Any) -> None:
    """
    Log directional flow messages with consistent arrow formatting.

    Args:
        direction: Either "→" (outgoing) or "←" (incoming/completed)
        component: Component name (e.g., "LLM", "Frontend", "Whisper")
        message: Message template with optional format placeholders
        *args: Arguments for message formatting
    """
    formatted_msg = message % args if args else message
    logger.info(f"{direction} {component}: {formatted_msg}")


def log_llm_request_start(request_id: str, transport: str, model: str) -> float:
    """Log the start of an LLM request and return start time."""
    start_time = time.monotonic()
    if should_log_feature("chat", "llm_requests"):
        logger.info(f"🚀 LLM request started: request_id={request_id}, transport={transport}, model={model}")
    return start_time


def log_llm_request_complete(request_id: str, start_time: float, success: bool = True) -> None:
    """Log the completion of an LLM request with timing."""
    if not should_log_feature("chat", "llm_requests"):
        return
    elapsed_ms = (time.monotonic() - start_time) * 1000
    status = "✅" if success else "❌"
    logger.info(f"{status} LLM request completed: request_id={request_id}, elapsed={elapsed_ms:.2f}ms")
