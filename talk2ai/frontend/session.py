"""
Chat Session

Client-side owner of one Conversation: builds the chat request from the
conversation and the user's settings, posts it to the backend and drives a
StreamReassembler over the streamed body.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

import httpx

from talk2ai.chat.logging_utils import log_directional_flow, should_log_feature
from talk2ai.chat.models import ChatSettings, Conversation, Turn
from talk2ai.clients.errors import HTTP_TOO_MANY_REQUESTS, RATE_LIMIT_MESSAGE, extract_error_message
from talk2ai.frontend.reassembler import ErrorCallback, StreamReassembler, TurnCallback

if TYPE_CHECKING:
    from talk2ai.frontend.settings_store import SettingsStore
    from talk2ai.frontend.voice import VoiceCapture

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "An error occurred. Please try again."
EVENT_STREAM_CONTENT_TYPE = "text/event-stream"


class ChatBusyError(RuntimeError):
    """Raised when a message is submitted while a response is still streaming."""


class ChatSession:
    """One conversation with the backend chat route, one request at a time."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: ChatSettings | None = None,
        settings_store: SettingsStore | None = None,
        on_update: TurnCallback | None = None,
        on_error: ErrorCallback | None = None,
        chat_path: str = "/api/chat",
    ) -> None:
        self.http_client = http_client
        self.settings_store = settings_store
        if settings is None:
            settings = settings_store.load() if settings_store else ChatSettings()
        self.settings = settings
        self.on_update = on_update
        self.on_error = on_error
        self.chat_path = chat_path

        self.conversation = Conversation()
        self.is_loading = False
        self.error_message: str | None = None

    def build_payload(self) -> dict[str, object]:
        """Request body for the chat route, from the full conversation."""
        return {
            "messages": self.conversation.get_api_format(),
            "model": self.settings.llm_model,
            "temperature": self.settings.temperature,
            "enableWebSearch": self.settings.enable_web_search,
        }

    async def submit(self, text: str) -> Turn | None:
        """
        Send one user message and stream the assistant's reply.

        Returns the assistant turn, or None when the backend produced no
        content. Failures surface through ``error_message`` and ``on_error``
        and never become transcript text.

        Raises:
            ChatBusyError: If the previous response is still streaming.
        """
        if not text.strip():
            return None
        if self.is_loading:
            raise ChatBusyError("A response is already streaming")

        self.is_loading = True
        self.error_message = None
        self.conversation.add_user_turn(text)
        payload = self.build_payload()

        if should_log_feature("frontend", "http_requests"):
            log_directional_flow(
                "→", "Backend", "POST %s model=%s messages=%d",
                self.chat_path, payload["model"], len(self.conversation.turns),
            )

        start = time.perf_counter()
        reassembler: StreamReassembler | None = None
        try:
            async with self.http_client.stream("POST", self.chat_path, json=payload) as response:
                if response.is_error:
                    await response.aread()
                    self._notify(self._failure_message(response))
                    return None

                content_type = response.headers.get("content-type", "")
                reassembler = StreamReassembler(
                    self.conversation,
                    on_update=self.on_update,
                    on_error=self._notify,
                    plain_text=not content_type.startswith(EVENT_STREAM_CONTENT_TYPE),
                )
                async for chunk in response.aiter_bytes():
                    reassembler.feed(chunk)
                    if reassembler.finished:
                        break
                reassembler.close()
        except httpx.HTTPError as e:
            logger.error(f"Chat request failed: {e}")
            if reassembler is not None:
                reassembler.close()
            self._notify(GENERIC_FAILURE_MESSAGE)
            return reassembler.turn if reassembler else None
        finally:
            self.is_loading = False

        if should_log_feature("frontend", "http_requests"):
            log_directional_flow(
                "←", "Backend", "%d chars in %.2fs", len(reassembler.content), time.perf_counter() - start
            )
        return reassembler.turn

    async def submit_voice(self, capture: VoiceCapture) -> Turn | None:
        """Submit a finished voice transcript and clear it from the capture."""
        if capture.is_active:
            raise ChatBusyError("Voice capture is still active")
        transcript = capture.transcript
        if not transcript.strip():
            return None
        capture.reset_transcript()
        return await self.submit(transcript)

    def reset(self) -> None:
        """Clear the transcript and any pending notice."""
        self.conversation.reset()
        self.error_message = None

    def apply_settings(self, settings: ChatSettings) -> None:
        """Switch settings; a different model starts a fresh conversation."""
        if settings.llm_model != self.settings.llm_model:
            logger.info("Model changed to %s, clearing conversation", settings.llm_model)
            self.reset()
        self.settings = settings
        if self.settings_store is not None:
            self.settings_store.save(settings)

    def _failure_message(self, response: httpx.Response) -> str:
        if response.status_code == HTTP_TOO_MANY_REQUESTS:
            return RATE_LIMIT_MESSAGE
        detail = extract_error_message(response.text)
        logger.error(f"Backend returned {response.status_code}: {detail or response.reason_phrase}")
        if detail and "rate limit" in detail.lower():
            return RATE_LIMIT_MESSAGE
        return GENERIC_FAILURE_MESSAGE

    def _notify(self, message: str) -> None:
        self.error_message = message
        if self.on_error:
            self.on_error(message)
