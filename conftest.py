"""Shared pytest fixtures: configuration without secrets and fake transports."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import pytest

from talk2ai.chat.models import ChatRequest, NormalizedEvent, TextDeltaEvent
from talk2ai.clients import LLMClient
from talk2ai.config import Configuration


class FakeTransport:
    """Chat transport that replays canned events, then optionally raises."""

    def __init__(
        self,
        name: str,
        events: list[NormalizedEvent] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.name = name
        self.events = events or []
        self.error = error
        self.requests: list[ChatRequest] = []

    async def stream(self, request: ChatRequest) -> AsyncIterator[NormalizedEvent]:
        self.requests.append(request)
        for event in self.events:
            yield event
        if self.error is not None:
            raise self.error


def text_events(*deltas: str) -> list[NormalizedEvent]:
    return [TextDeltaEvent(delta=d) for d in deltas]


def completion_chunk(content: str | None = None, **delta: Any) -> str:
    """One provider SSE line carrying a chat.completion.chunk."""
    if content is not None:
        delta["content"] = content
    chunk = {"object": "chat.completion.chunk", "choices": [{"index": 0, "delta": delta}]}
    return "data: " + json.dumps(chunk, ensure_ascii=False)


@pytest.fixture
def make_configuration(tmp_path):
    """Factory for configurations that never read a runtime override file."""

    def factory(overrides: dict[str, Any] | None = None) -> Configuration:
        return Configuration(
            runtime_config_path=str(tmp_path / "runtime_config.yaml"),
            overrides=overrides,
        )

    return factory


@pytest.fixture
def configuration(make_configuration) -> Configuration:
    return make_configuration()


@pytest.fixture
def sdk_transport() -> FakeTransport:
    return FakeTransport("sdk", text_events("Hel", "lo"))


@pytest.fixture
def search_transport() -> FakeTransport:
    return FakeTransport("search", text_events("Searched"))


@pytest.fixture
def llm_client(configuration, sdk_transport, search_transport) -> LLMClient:
    return LLMClient(configuration, sdk_transport=sdk_transport, search_transport=search_transport)
