"""
Voice Capture

The chat core only needs a finished transcript and whether capture is still
running. ``VoiceCapture`` is that seam. ``RemoteTranscriber`` implements it by
buffering recorded audio and sending it to the backend transcription route
when recording stops.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import httpx

from talk2ai.chat.logging_utils import log_directional_flow, should_log_feature
from talk2ai.chat.models import ChatSettings

logger = logging.getLogger(__name__)

BROWSER_RECOGNITION = "web-speech-api"


@runtime_checkable
class VoiceCapture(Protocol):
    transcript: str
    is_active: bool

    def reset_transcript(self) -> None: ...


def whisper_language(language: str) -> str:
    """ISO 639-1 code from a BCP-47 tag (``ja-JP`` -> ``ja``)."""
    return language.split("-")[0].lower()


class RemoteTranscriber:
    """Record-then-transcribe capture backed by POST /api/whisper."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: ChatSettings,
        whisper_path: str = "/api/whisper",
        content_type: str = "audio/webm",
    ) -> None:
        self.http_client = http_client
        self.settings = settings
        self.whisper_path = whisper_path
        self.content_type = content_type

        self.transcript = ""
        self.is_active = False
        self.is_transcribing = False
        self._chunks: list[bytes] = []

    def start_recording(self) -> None:
        self._chunks = []
        self.is_active = True

    def add_audio(self, chunk: bytes) -> None:
        if self.is_active and chunk:
            self._chunks.append(chunk)

    async def stop_recording(self) -> str:
        """Stop capturing and transcribe what was recorded.

        A failed transcription is logged and leaves the transcript unchanged.
        """
        if not self.is_active:
            return self.transcript
        self.is_active = False

        audio = b"".join(self._chunks)
        self._chunks = []
        if not audio:
            return self.transcript

        data = {"language": whisper_language(self.settings.language)}
        if self.settings.speech_recognition != BROWSER_RECOGNITION:
            data["model"] = self.settings.speech_recognition

        if should_log_feature("frontend", "http_requests"):
            log_directional_flow("→", "Whisper", "%d bytes, language=%s", len(audio), data["language"])

        self.is_transcribing = True
        try:
            response = await self.http_client.post(
                self.whisper_path,
                data=data,
                files={"audio": ("recording.webm", audio, self.content_type)},
            )
            response.raise_for_status()
            self.transcript = str(response.json().get("text") or "")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Transcription error: {e}")
        finally:
            self.is_transcribing = False

        return self.transcript

    def reset_transcript(self) -> None:
        self.transcript = ""
