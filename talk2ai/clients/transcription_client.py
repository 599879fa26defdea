"""Groq Whisper transcription client."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from talk2ai.chat.logging_utils import log_directional_flow
from talk2ai.clients.errors import UpstreamError, UpstreamHTTPError
from talk2ai.config import Configuration

logger = logging.getLogger(__name__)


class TranscriptionClient:
    """Forwards recorded audio to the hosted speech-to-text endpoint."""

    def __init__(self, configuration: Configuration, http_client: httpx.AsyncClient | None = None) -> None:
        self.config: dict[str, Any] = configuration.get_transcription_config()
        self.default_model: str = self.config.get("default_model", "whisper-large-v3-turbo")
        self.default_language: str = self.config.get("default_language", "ja")
        self._owns_client = http_client is None

        if http_client is None:
            llm_config = configuration.get_llm_config()
            http_client = httpx.AsyncClient(
                base_url=llm_config["base_url"],
                headers={"Authorization": f"Bearer {configuration.llm_api_key}"},
                timeout=self.config.get("timeout", 60.0),
                trust_env=False,
            )
        self.client = http_client

    async def transcribe(
        self,
        audio: bytes,
        filename: str = "recording.webm",
        content_type: str = "audio/webm",
        model: str | None = None,
        language: str | None = None,
    ) -> str:
        """
        Transcribe an audio clip and return the recognized text.

        Raises:
            UpstreamHTTPError: the provider answered with a non-2xx status.
            UpstreamError: the provider could not be reached or answered garbage.
        """
        form = {
            "model": model or self.default_model,
            "language": language or self.default_language,
            "response_format": "json",
        }
        log_directional_flow("→", "Whisper", "transcribing %d bytes with %s", len(audio), form["model"])

        try:
            response = await self.client.post(
                "/audio/transcriptions",
                data=form,
                files={"file": (filename, audio, content_type)},
            )
        except httpx.HTTPError as e:
            raise UpstreamError(f"HTTP error: {e!s}") from e

        if response.is_error:
            logger.error("Groq Whisper API error: %s", response.text[:1000])
            raise UpstreamHTTPError.from_response(response, response.text)

        try:
            text = response.json()["text"]
        except (ValueError, KeyError, TypeError) as e:
            raise UpstreamError(f"Unexpected transcription response: {e!s}") from e

        log_directional_flow("←", "Whisper", "transcript length=%d", len(text))
        return str(text)

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()
