"""
LLM streaming client for the Groq chat completions API.

Two transports implement the same "produce a chat stream" capability:

- SDKChatTransport: the groq SDK manages retries and connections (default)
- SearchChatTransport: raw streaming POST with the browser search tool forced,
  used when the model has built-in search and the user asked for web search

Both yield normalized events. Search transport failures fall back to the SDK
transport, except rate limiting, which is surfaced to the caller.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from typing import Any, Protocol

import groq
import httpx
from groq import AsyncGroq

from talk2ai.chat.logging_utils import should_log_feature
from talk2ai.chat.models import ChatRequest, NormalizedEvent
from talk2ai.chat.stream_normalizer import normalize_chunk_stream, normalize_sse_stream
from talk2ai.clients.errors import UpstreamError, UpstreamHTTPError
from talk2ai.clients.model_capabilities import ModelCapabilities
from talk2ai.config import Configuration

logger = logging.getLogger(__name__)


class ChatStreamTransport(Protocol):
    """Produces the normalized event stream for one chat request."""

    name: str

    def stream(self, request: ChatRequest) -> AsyncIterator[NormalizedEvent]: ...


class SDKChatTransport:
    """Managed streaming call through the groq SDK."""

    name = "sdk"

    def __init__(self, client: AsyncGroq) -> None:
        self.client = client

    async def stream(self, request: ChatRequest) -> AsyncIterator[NormalizedEvent]:
        try:
            completion_stream = await self.client.chat.completions.create(
                model=request.model,
                messages=request.get_api_messages(),  # type: ignore[arg-type]
                temperature=request.temperature,
                stream=True,
            )
            async for event in normalize_chunk_stream(self._iter_chunks(completion_stream)):
                yield event
        except groq.APIStatusError as e:
            raise UpstreamHTTPError(
                e.status_code,
                httpx.codes.get_reason_phrase(e.status_code),
                _sdk_error_message(e),
            ) from e
        except groq.APIError as e:
            raise UpstreamError(f"LLM API error: {e.message}") from e

    @staticmethod
    async def _iter_chunks(completion_stream: Any) -> AsyncIterator[dict[str, Any]]:
        async for chunk in completion_stream:
            yield chunk.model_dump(exclude_none=True)


def _sdk_error_message(error: groq.APIStatusError) -> str:
    body = error.body
    if isinstance(body, dict):
        inner = body.get("error", body)
        if isinstance(inner, dict) and inner.get("message"):
            return str(inner["message"])
    return error.message


class SearchChatTransport:
    """Direct SSE request with a required browser search tool."""

    name = "search"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        search_config: dict[str, Any],
    ) -> None:
        self.http_client = http_client
        self.tool_type: str = search_config.get("tool_type", "browser_search")
        self.system_prompt: str = search_config.get("system_prompt", "")

    def _build_payload(self, request: ChatRequest) -> dict[str, Any]:
        messages = request.get_api_messages()
        if self.system_prompt:
            messages = [{"role": "system", "content": self.system_prompt}, *messages]

        return {
            "model": request.model,
            "messages": messages,
            "temperature": request.temperature,
            "stream": True,
            "tools": [{"type": self.tool_type}],
            "tool_choice": "required",
        }

    async def stream(self, request: ChatRequest) -> AsyncIterator[NormalizedEvent]:
        payload = self._build_payload(request)
        start_time = time.monotonic()

        try:
            async with self.http_client.stream(
                "POST",
                "/chat/completions",
                json=payload,
                headers={"Accept": "text/event-stream", "Accept-Encoding": "identity"},
            ) as response:
                if should_log_feature("clients", "http_requests"):
                    logger.info(
                        "🔌 HTTP POST /chat/completions | Status: %d | Duration: %.2fms",
                        response.status_code,
                        (time.monotonic() - start_time) * 1000,
                    )

                if response.is_error:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise UpstreamHTTPError.from_response(response, body)

                async for event in normalize_sse_stream(response.aiter_bytes()):
                    yield event

        except httpx.HTTPError as e:
            logger.error(f"HTTP error during search streaming: {type(e).__name__}: {e}")
            raise UpstreamError(f"HTTP error: {e!s}") from e


class LLMClient:
    """
    Selects the transport for each request and applies the fallback policy.

    Transports can be injected; otherwise they are built from configuration.
    """

    def __init__(
        self,
        configuration: Configuration,
        sdk_transport: ChatStreamTransport | None = None,
        search_transport: ChatStreamTransport | None = None,
    ) -> None:
        self.configuration = configuration
        self.config: dict[str, Any] = configuration.get_llm_config()
        self.capabilities = ModelCapabilities(configuration.get_search_config())
        self._sdk_client: AsyncGroq | None = None
        self._http_client: httpx.AsyncClient | None = None

        if sdk_transport is None:
            self._sdk_client = AsyncGroq(
                api_key=configuration.llm_api_key,
                max_retries=self.config.get("max_retries", 3),
                timeout=self.config.get("timeout", 60.0),
            )
            sdk_transport = SDKChatTransport(self._sdk_client)

        if search_transport is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.config["base_url"],
                headers={
                    "Authorization": f"Bearer {configuration.llm_api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.config.get("timeout", 60.0),
                http2=True,
                trust_env=False,
            )
            search_transport = SearchChatTransport(self._http_client, configuration.get_search_config())

        self.sdk_transport: ChatStreamTransport = sdk_transport
        self.search_transport: ChatStreamTransport = search_transport

    def select_transport(self, request: ChatRequest) -> ChatStreamTransport:
        if self.capabilities.requires_search_transport(request.model, request.enable_web_search):
            return self.search_transport
        return self.sdk_transport

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[NormalizedEvent]:
        """
        Stream normalized events for a chat request.

        Raises:
            UpstreamError: the request failed and no fallback applies; rate
                limiting is never retried or routed to the fallback.
        """
        transport = self.select_transport(request)
        if transport is self.sdk_transport:
            async for event in self.sdk_transport.stream(request):
                yield event
            return

        emitted = False
        try:
            async for event in transport.stream(request):
                emitted = True
                yield event
            return
        except UpstreamError as e:
            # Once events reached the caller a retry would duplicate content
            if e.is_rate_limited or emitted:
                raise
            if should_log_feature("clients", "fallbacks"):
                logger.warning(f"🔄 Search transport failed ({e}), falling back to SDK without search")

        async for event in self.sdk_transport.stream(request):
            yield event

    async def close(self) -> None:
        """Close the underlying HTTP clients."""
        if self._http_client is not None:
            await self._http_client.aclose()
        if self._sdk_client is not None:
            await self._sdk_client.close()

    async def __aenter__(self) -> LLMClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()
