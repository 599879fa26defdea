"""Persistent client settings, kept in a small JSON document."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from pydantic import ValidationError

from talk2ai.chat.models import ChatSettings

logger = logging.getLogger(__name__)

SETTINGS_STORAGE_KEY = "talk2ai-settings"


class SettingsStore:
    """
    Stores ChatSettings under a fixed key in a JSON file.

    The file may hold other keys; they are preserved on save. Loading merges
    what was saved over the defaults, so unknown keys are ignored and invalid
    or missing fields fall back to their default values.
    """

    def __init__(self, path: str, key: str = SETTINGS_STORAGE_KEY) -> None:
        self.path = path
        self.key = key

    def _read_document(self) -> dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load settings: {e}")
            return {}
        if not isinstance(document, dict):
            logger.warning("Settings file %s is not a JSON object, ignoring it", self.path)
            return {}
        return document

    def load(self) -> ChatSettings:
        saved = self._read_document().get(self.key)
        if not isinstance(saved, dict):
            return ChatSettings()

        try:
            return ChatSettings.model_validate(saved)
        except ValidationError as e:
            invalid = {str(err["loc"][0]) for err in e.errors() if err["loc"]}
            # a field may have been saved under its name or its alias
            for name, field in ChatSettings.model_fields.items():
                if name in invalid or field.alias in invalid:
                    invalid.update(key for key in (name, field.alias) if key)
            logger.warning("Dropping invalid saved settings: %s", ", ".join(sorted(invalid)))
            cleaned = {k: v for k, v in saved.items() if k not in invalid}
            return ChatSettings.model_validate(cleaned)

    def save(self, settings: ChatSettings) -> None:
        document = self._read_document()
        document[self.key] = settings.model_dump(by_alias=True)

        directory = os.path.dirname(self.path)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
        except OSError as e:
            logger.error(f"Failed to save settings: {e}")
