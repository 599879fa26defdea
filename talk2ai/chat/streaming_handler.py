"""
Streaming Response Handler

Runs one chat request against the LLM client and frames the normalized events
for the frontend:

- UI message stream: one SSE envelope per event, always ending in finish
- text stream: only visible text deltas, as a plain body; a failure before the
  first delta is reported to the route instead of starting the body

This is the outermost boundary for a streamed request: nothing raised while
streaming escapes to the ASGI server. Failures become a single error event
followed by finish.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import aclosing
from typing import TYPE_CHECKING

from talk2ai.chat.logging_utils import (
    log_directional_flow,
    log_llm_request_complete,
    log_llm_request_start,
)
from talk2ai.chat.models import (
    ChatRequest,
    ErrorEvent,
    EventType,
    FinishEvent,
    NormalizedEvent,
    TextDeltaEvent,
)
from talk2ai.chat.sse import encode_event
from talk2ai.clients.errors import UpstreamError

if TYPE_CHECKING:
    from talk2ai.clients import LLMClient

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An error occurred. Please try again."


class StreamingHandler:
    """Turns a ChatRequest into a terminated stream of normalized events."""

    def __init__(self, llm_client: LLMClient) -> None:
        self.llm_client = llm_client

    async def stream_events(
        self, request: ChatRequest, request_id: str | None = None
    ) -> AsyncGenerator[NormalizedEvent, None]:
        """
        Yield the events for one request, guaranteeing exactly one finish.

        An error event ends the turn: it is followed by finish and nothing else.
        """
        request_id = request_id or uuid.uuid4().hex[:12]
        transport = self.llm_client.select_transport(request)
        start_time = log_llm_request_start(request_id, transport.name, request.model)
        success = True

        try:
            async with aclosing(self.llm_client.stream_chat(request)) as events:
                async for event in events:
                    if event.type == EventType.FINISH:
                        break
                    if isinstance(event, ErrorEvent):
                        success = False
                        # provider text naming a rate limit gets the fixed user message
                        yield ErrorEvent(error=UpstreamError(event.error).user_message)
                        break
                    yield event
        except UpstreamError as e:
            success = False
            if e.is_rate_limited:
                logger.warning(f"Rate limited by provider for request_id={request_id}: {e}")
            else:
                logger.error(f"Upstream failure for request_id={request_id}: {e}")
            yield ErrorEvent(error=e.user_message)
        except Exception as e:
            success = False
            logger.exception(f"Unexpected error while streaming request_id={request_id}: {e}")
            yield ErrorEvent(error=GENERIC_ERROR_MESSAGE)

        log_llm_request_complete(request_id, start_time, success)
        log_directional_flow("←", "Frontend", "stream finished for request_id=%s", request_id)
        yield FinishEvent()

    async def stream_ui_messages(self, request: ChatRequest) -> AsyncIterator[str]:
        """UI message stream body: ``data: {json}\\n\\n`` per event."""
        async for event in self.stream_events(request):
            yield encode_event(event)

    async def open_text_stream(self, request: ChatRequest) -> ErrorEvent | AsyncIterator[str]:
        """
        Start a plain text body: visible text deltas only.

        Events are read up to the first text delta. An error before that point
        is returned instead of a body so the route can answer with a status
        code. An error after text has been sent only ends the body.
        """
        events = self.stream_events(request)
        first_delta: str | None = None

        async for event in events:
            if isinstance(event, ErrorEvent):
                await events.aclose()
                return event
            if isinstance(event, TextDeltaEvent):
                first_delta = event.delta
                break

        return self._text_body(first_delta, events)

    async def _text_body(
        self, first_delta: str | None, events: AsyncGenerator[NormalizedEvent, None]
    ) -> AsyncIterator[str]:
        async with aclosing(events):
            if first_delta:
                yield first_delta
            async for event in events:
                if isinstance(event, TextDeltaEvent):
                    yield event.delta
                elif isinstance(event, ErrorEvent):
                    logger.warning("Text stream ended by error: %s", event.error)
