"""
Client Stream Reassembler

Reads the chat route's response body incrementally and maintains the one
growing assistant turn of that response.

Two wire shapes are accepted:

- UI message stream (text/event-stream): ``data: {json}`` envelopes of the
  normalized events, dispatched by event type
- plain text stream: every decoded chunk is appended verbatim

Inside an event stream, a ``data:`` payload that is not an event envelope and
does not start like JSON is treated as literal text, as is any line without a
``data:`` field. That keeps the plain text degraded mode readable when a proxy
rewrites the stream.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from talk2ai.chat.logging_utils import should_log_feature
from talk2ai.chat.models import (
    Conversation,
    ErrorEvent,
    EventType,
    NormalizedEvent,
    ReasoningDeltaEvent,
    TextDeltaEvent,
    ToolCallDeltaEvent,
    ToolResultEvent,
    Turn,
    parse_event,
)
from talk2ai.chat.sse import DATA_FIELD, DONE_SENTINEL, LineBuffer

logger = logging.getLogger(__name__)

TurnCallback = Callable[[Turn], None]
ErrorCallback = Callable[[str], None]

_KNOWN_EVENT_TYPES = frozenset(EventType)
# complete-text envelope: {"type": "text", "content": "..."}
TEXT_ENVELOPE_TYPE = "text"


def decode_envelope(payload: str) -> dict[str, Any] | None:
    """
    Return the decoded envelope if ``payload`` is one, else None.

    An envelope is a JSON object carrying a string ``type`` member. Whether the
    type is one this client understands is decided by the caller.
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        return None
    if isinstance(data, dict) and isinstance(data.get("type"), str):
        return data
    return None


def looks_structured(payload: str) -> bool:
    """Payloads opening a JSON object or array are never shown as text."""
    return payload.lstrip().startswith(("{", "["))


def format_tool_result(result: Any) -> str:
    return f"\n\n[Search results: {json.dumps(result, ensure_ascii=False)}]\n\n"


class StreamReassembler:
    """Accumulates one response into one assistant turn of a conversation."""

    def __init__(
        self,
        conversation: Conversation,
        on_update: TurnCallback | None = None,
        on_error: ErrorCallback | None = None,
        plain_text: bool = False,
    ) -> None:
        self.conversation = conversation
        self.on_update = on_update
        self.on_error = on_error
        self.plain_text = plain_text

        self.content = ""
        self.turn_id: int | None = None
        self.error: str | None = None
        self.finished = False

        self._lines = LineBuffer()
        self._text_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._dirty = False
        self._raw_line_open = False
        self._handlers: dict[EventType, Callable[[Any], None]] = {
            EventType.TEXT_DELTA: self._on_text_delta,
            EventType.REASONING_DELTA: self._on_reasoning_delta,
            EventType.TOOL_CALL_DELTA: self._on_tool_call_delta,
            EventType.TOOL_RESULT: self._on_tool_result,
            EventType.ERROR: self._on_error,
            EventType.FINISH: self._on_finish,
        }
        missing = set(_KNOWN_EVENT_TYPES) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No reassembler handler for event types: {sorted(missing)}")

    @property
    def turn(self) -> Turn | None:
        if self.turn_id is None:
            return None
        return self.conversation.get_turn(self.turn_id)

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def feed(self, chunk: bytes | str) -> None:
        """Consume one read of the response body and re-render if it changed."""
        if self.finished:
            return

        if self.plain_text:
            text = self._text_decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
            if text:
                self._append(text)
        else:
            for line in self._lines.feed(chunk):
                self._handle_line(line)
                if self.finished:
                    break

        self._render()

    def close(self) -> None:
        """End of body: an abrupt close counts as finish."""
        if self.finished:
            return
        if self.plain_text:
            tail = self._text_decoder.decode(b"", final=True)
            if tail:
                self._append(tail)
        else:
            for line in self._lines.flush():
                self._handle_line(line)
                if self.finished:
                    break
        self._render()
        self._on_finish(None)

    # ------------------------------------------------------------------
    # Line handling
    # ------------------------------------------------------------------

    def _handle_line(self, line: str) -> None:
        stripped = line.strip()
        if not stripped:
            return
        if stripped == DONE_SENTINEL:
            self._on_finish(None)
            return

        if not line.startswith(DATA_FIELD):
            self._append_raw_line(line)
            return

        payload = line[len(DATA_FIELD) :].removeprefix(" ")
        if payload.strip() == DONE_SENTINEL:
            self._on_finish(None)
            return

        envelope = decode_envelope(payload)
        if envelope is not None:
            self._handle_envelope(envelope)
        elif looks_structured(payload):
            logger.warning("Skipping malformed stream envelope: %s", payload[:200])
        else:
            self._append(payload)

    def _handle_envelope(self, envelope: dict[str, Any]) -> None:
        if envelope["type"] == TEXT_ENVELOPE_TYPE:
            content = envelope.get("content")
            if isinstance(content, str):
                self._append(content)
            return
        if envelope["type"] not in _KNOWN_EVENT_TYPES:
            # start, text-start, finish-step and friends carry nothing to show
            logger.debug("Ignoring stream envelope of type %s", envelope["type"])
            return
        try:
            event: NormalizedEvent = parse_event(envelope)
        except ValidationError as e:
            logger.warning("Skipping invalid %s envelope: %s", envelope["type"], e)
            return

        if should_log_feature("frontend", "stream_events"):
            logger.info("← Backend: %s", event.type)
        self._handlers[EventType(event.type)](event)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _on_text_delta(self, event: TextDeltaEvent) -> None:
        self._append(event.delta)

    def _on_reasoning_delta(self, event: ReasoningDeltaEvent) -> None:
        # Internal reasoning is never shown to the user
        logger.debug("Consumed reasoning delta, length=%d", len(event.delta))

    def _on_tool_call_delta(self, event: ToolCallDeltaEvent) -> None:
        self._append(event.delta)

    def _on_tool_result(self, event: ToolResultEvent) -> None:
        if event.result:
            self._append(format_tool_result(event.result))

    def _on_error(self, event: ErrorEvent) -> None:
        self.error = event.error or "An error occurred. Please try again."
        logger.warning("Stream reported error: %s", self.error)
        if self.on_error:
            self.on_error(self.error)
        self._on_finish(None)

    def _on_finish(self, _event: Any) -> None:
        if self.finished:
            return
        self.finished = True
        if self.turn_id is not None:
            self.conversation.finalize_turn(self.turn_id)

    # ------------------------------------------------------------------
    # Turn maintenance
    # ------------------------------------------------------------------

    def _append_raw_line(self, line: str) -> None:
        # consecutive plain lines keep their line breaks
        separator = "\n" if self._raw_line_open else ""
        self._append(separator + line)
        self._raw_line_open = True

    def _append(self, text: str) -> None:
        if not text:
            return
        self._raw_line_open = False
        self.content += text
        if self.turn_id is None:
            self.turn_id = self.conversation.add_assistant_turn(self.content).id
        else:
            self.conversation.update_assistant_turn(self.turn_id, self.content)
        self._dirty = True

    def _render(self) -> None:
        if not self._dirty:
            return
        self._dirty = False
        turn = self.turn
        if turn is not None and self.on_update:
            self.on_update(turn)
