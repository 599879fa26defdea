"""
Model capability lookup for the Groq chat models.

Decides which transport a request needs: models with built-in browser search
go through the raw HTTP transport when the user asks for web search.
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_MODELS = ("openai/gpt-oss-20b", "openai/gpt-oss-120b")


class ModelCapabilities:
    """Capability predicates backed by the `llm.search` configuration."""

    def __init__(self, search_config: dict[str, Any] | None = None) -> None:
        search_config = search_config or {}
        self._search_models: frozenset[str] = frozenset(search_config.get("models", DEFAULT_SEARCH_MODELS))
        logger.debug("Models with built-in browser search: %s", sorted(self._search_models))

    def supports_browser_search(self, model: str) -> bool:
        return model in self._search_models

    def requires_search_transport(self, model: str, enable_web_search: bool) -> bool:
        """Raw search transport only when the model can search AND search was requested."""
        return enable_web_search and self.supports_browser_search(model)
