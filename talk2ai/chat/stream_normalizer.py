"""
Stream Normalizer

Translates the provider's chat-completion stream into the normalized event
sequence consumed by the UI:

- SSE byte streams from the raw HTTP transport (line reassembly, [DONE])
- chunk objects from the provider SDK (same payload mapping)

A malformed line never aborts the stream, and every stream ends with exactly
one finish event.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from talk2ai.chat.logging_utils import should_log_feature
from talk2ai.chat.models import (
    ErrorEvent,
    FinishEvent,
    NormalizedEvent,
    ReasoningDeltaEvent,
    TextDeltaEvent,
    ToolCallDeltaEvent,
    ToolResultEvent,
)
from talk2ai.chat.sse import DATA_FIELD, DONE_SENTINEL, LineBuffer

logger = logging.getLogger(__name__)


def map_completion_chunk(chunk: dict[str, Any]) -> list[NormalizedEvent]:
    """
    Map one chat.completion.chunk payload to normalized events.

    Order within a chunk: reasoning, tool-call deltas, executed tool results,
    then visible text.
    """
    error = chunk.get("error")
    if error:
        if isinstance(error, dict):
            message = error.get("message") or json.dumps(error)
        else:
            message = str(error)
        return [ErrorEvent(error=message)]

    choices: list[dict[str, Any]] = chunk.get("choices") or []
    if not choices:
        return []

    delta: dict[str, Any] = choices[0].get("delta") or {}
    events: list[NormalizedEvent] = []

    reasoning = delta.get("reasoning")
    if reasoning:
        events.append(ReasoningDeltaEvent(delta=reasoning))

    for tool_call in delta.get("tool_calls") or []:
        arguments = (tool_call.get("function") or {}).get("arguments")
        if arguments:
            events.append(ToolCallDeltaEvent(delta=arguments))

    for executed in delta.get("executed_tools") or []:
        output = executed.get("output")
        if output is None:
            continue
        events.append(ToolResultEvent(result=_decode_tool_output(output)))

    content = delta.get("content")
    if content:
        events.append(TextDeltaEvent(delta=content))

    return events


def _decode_tool_output(output: Any) -> Any:
    if isinstance(output, str):
        try:
            return json.loads(output)
        except json.JSONDecodeError:
            return output
    return output


class StreamNormalizer:
    """Incremental SSE-to-event translator for one response stream."""

    def __init__(self) -> None:
        self._lines = LineBuffer()
        self.finished = False
        self.skipped_lines = 0

    def feed(self, chunk: bytes | str) -> list[NormalizedEvent]:
        """Consume one upstream read and return the events it completes."""
        if self.finished:
            return []
        return self._process_lines(self._lines.feed(chunk))

    def close(self) -> list[NormalizedEvent]:
        """End of upstream stream: flush the last line and guarantee a finish."""
        if self.finished:
            return []
        events = self._process_lines(self._lines.flush())
        if not self.finished:
            logger.debug("Upstream closed without [DONE], synthesizing finish")
            self.finished = True
            events.append(FinishEvent())
        return events

    def _process_lines(self, lines: list[str]) -> list[NormalizedEvent]:
        events: list[NormalizedEvent] = []
        for line in lines:
            if self.finished:
                break
            events.extend(self._process_line(line))
        return events

    def _process_line(self, line: str) -> list[NormalizedEvent]:
        if not line.strip():
            return []

        if not line.startswith(DATA_FIELD):
            # SSE comments, event:/id: fields and keep-alives carry no payload
            logger.debug("Ignoring non-data SSE line: %s", line[:80])
            return []

        data = line[len(DATA_FIELD) :].strip()
        if data == DONE_SENTINEL:
            self.finished = True
            return [FinishEvent()]

        try:
            payload = json.loads(data)
        except json.JSONDecodeError as e:
            self.skipped_lines += 1
            logger.warning("Skipping malformed stream chunk: %s (%s)", data[:200], e)
            return []

        if not isinstance(payload, dict):
            self.skipped_lines += 1
            logger.warning("Skipping non-object stream chunk: %s", data[:200])
            return []

        events = map_completion_chunk(payload)
        if should_log_feature("chat", "stream_events"):
            for event in events:
                logger.info("← LLM: %s", event.type)
        return events


async def normalize_sse_stream(
    chunks: AsyncIterable[bytes | str],
) -> AsyncIterator[NormalizedEvent]:
    """Normalize an SSE byte stream, yielding events as lines complete."""
    normalizer = StreamNormalizer()
    async for chunk in chunks:
        for event in normalizer.feed(chunk):
            yield event
        if normalizer.finished:
            return
    for event in normalizer.close():
        yield event


async def normalize_chunk_stream(
    chunks: AsyncIterable[dict[str, Any]],
) -> AsyncIterator[NormalizedEvent]:
    """Normalize already-decoded completion chunks (SDK transport)."""
    async for chunk in chunks:
        for event in map_completion_chunk(chunk):
            yield event
    yield FinishEvent()
