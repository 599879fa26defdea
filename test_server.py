"""
HTTP route tests, driven through httpx.ASGITransport.

The chat route runs on fake transports; the transcription route talks to a
MockTransport standing in for the provider.
"""

from __future__ import annotations

import json

import httpx
import pytest

from conftest import FakeTransport, text_events
from talk2ai.chat.models import ErrorEvent, ReasoningDeltaEvent
from talk2ai.clients import (
    RATE_LIMIT_MESSAGE,
    LLMClient,
    SearchChatTransport,
    TranscriptionClient,
    UpstreamHTTPError,
)
from talk2ai.server import ChatServer

PROVIDER_URL = "https://api.groq.test/openai/v1"


def provider_ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"text": "こんにちは"})


def make_server(configuration, sdk_transport, provider_handler=provider_ok, search_transport=None) -> ChatServer:
    llm_client = LLMClient(
        configuration,
        sdk_transport=sdk_transport,
        search_transport=search_transport or FakeTransport("search", text_events("Searched")),
    )
    provider = httpx.AsyncClient(transport=httpx.MockTransport(provider_handler), base_url=PROVIDER_URL)
    return ChatServer(configuration, llm_client=llm_client, transcription_client=TranscriptionClient(configuration, provider))


def client_for(server: ChatServer) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=server.app), base_url="http://test")


def parse_sse(body: str) -> list[dict]:
    return [json.loads(line[len("data: ") :]) for line in body.split("\n") if line.startswith("data: ")]


CHAT_BODY = {"messages": [{"role": "user", "content": "Hi"}], "model": "llama-3.3-70b-versatile"}


async def test_health(configuration, sdk_transport):
    async with client_for(make_server(configuration, sdk_transport)) as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


async def test_chat_streams_ui_messages(configuration, sdk_transport):
    async with client_for(make_server(configuration, sdk_transport)) as client:
        response = await client.post("/api/chat", json=CHAT_BODY)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert response.headers["x-accel-buffering"] == "no"
    assert response.headers["x-vercel-ai-ui-message-stream"] == "v1"
    assert parse_sse(response.text) == [
        {"type": "text-delta", "delta": "Hel"},
        {"type": "text-delta", "delta": "lo"},
        {"type": "finish"},
    ]
    request = sdk_transport.requests[0]
    assert request.temperature == 0.7
    assert request.get_api_messages() == [{"role": "user", "content": "Hi"}]


async def test_chat_uses_search_transport_when_requested(configuration, sdk_transport):
    body = {**CHAT_BODY, "model": "openai/gpt-oss-120b", "enableWebSearch": True}

    async with client_for(make_server(configuration, sdk_transport)) as client:
        response = await client.post("/api/chat", json=body)

    assert parse_sse(response.text)[0] == {"type": "text-delta", "delta": "Searched"}
    assert sdk_transport.requests == []


async def test_chat_rate_limit_becomes_error_event(configuration):
    sdk = FakeTransport("sdk", error=UpstreamHTTPError(429, "Too Many Requests", "Rate limit reached"))

    async with client_for(make_server(configuration, sdk)) as client:
        response = await client.post("/api/chat", json=CHAT_BODY)

    assert response.status_code == 200
    assert parse_sse(response.text) == [{"type": "error", "error": RATE_LIMIT_MESSAGE}, {"type": "finish"}]


async def test_chat_unexpected_failure_is_contained(configuration):
    sdk = FakeTransport("sdk", [ReasoningDeltaEvent(delta="...")], error=RuntimeError("kaboom"))

    async with client_for(make_server(configuration, sdk)) as client:
        response = await client.post("/api/chat", json=CHAT_BODY)

    events = parse_sse(response.text)
    assert events[0] == {"type": "reasoning-delta", "delta": "..."}
    assert events[1] == {"type": "error", "error": "An error occurred. Please try again."}
    assert events[-1] == {"type": "finish"}
    assert len(events) == 3


async def test_chat_rejects_invalid_request(configuration, sdk_transport):
    async with client_for(make_server(configuration, sdk_transport)) as client:
        response = await client.post("/api/chat", json={"messages": "nope"})

    assert response.status_code == 422


async def test_chat_text_protocol(make_configuration, sdk_transport):
    configuration = make_configuration({"chat": {"stream_protocol": "text"}})

    async with client_for(make_server(configuration, sdk_transport)) as client:
        response = await client.post("/api/chat", json=CHAT_BODY)

    assert response.headers["content-type"].startswith("text/plain")
    assert response.text == "Hello"


async def test_in_stream_rate_limit_text_uses_fixed_message(configuration, sdk_transport):
    def provider(request: httpx.Request) -> httpx.Response:
        body = b'data: {"error":{"message":"Rate limit reached for model openai/gpt-oss-20b"}}\n\n'
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body)

    search = SearchChatTransport(
        httpx.AsyncClient(transport=httpx.MockTransport(provider), base_url=PROVIDER_URL),
        configuration.get_search_config(),
    )
    body = {**CHAT_BODY, "model": "openai/gpt-oss-20b", "enableWebSearch": True}

    async with client_for(make_server(configuration, sdk_transport, search_transport=search)) as client:
        response = await client.post("/api/chat", json=body)

    assert response.status_code == 200
    assert parse_sse(response.text) == [{"type": "error", "error": RATE_LIMIT_MESSAGE}, {"type": "finish"}]
    assert sdk_transport.requests == []


async def test_in_stream_error_text_passes_through(configuration):
    sdk = FakeTransport("sdk", [ErrorEvent(error="Model is overloaded")])

    async with client_for(make_server(configuration, sdk)) as client:
        response = await client.post("/api/chat", json=CHAT_BODY)

    assert parse_sse(response.text) == [{"type": "error", "error": "Model is overloaded"}, {"type": "finish"}]


async def test_text_protocol_rate_limit_before_text_is_a_status(make_configuration):
    configuration = make_configuration({"chat": {"stream_protocol": "text"}})
    sdk = FakeTransport("sdk", error=UpstreamHTTPError(429, "Too Many Requests", "Rate limit reached"))

    async with client_for(make_server(configuration, sdk)) as client:
        response = await client.post("/api/chat", json=CHAT_BODY)

    assert response.status_code == 429
    assert response.json() == {"error": RATE_LIMIT_MESSAGE}


async def test_text_protocol_failure_before_text_is_a_status(make_configuration):
    configuration = make_configuration({"chat": {"stream_protocol": "text"}})
    sdk = FakeTransport("sdk", [ReasoningDeltaEvent(delta="...")], error=RuntimeError("kaboom"))

    async with client_for(make_server(configuration, sdk)) as client:
        response = await client.post("/api/chat", json=CHAT_BODY)

    assert response.status_code == 500
    assert response.json() == {"error": "An error occurred. Please try again."}


async def test_text_protocol_failure_after_text_keeps_partial_body(make_configuration):
    configuration = make_configuration({"chat": {"stream_protocol": "text"}})
    sdk = FakeTransport("sdk", text_events("Hel"), error=RuntimeError("kaboom"))

    async with client_for(make_server(configuration, sdk)) as client:
        response = await client.post("/api/chat", json=CHAT_BODY)

    assert response.status_code == 200
    assert response.text == "Hel"


async def test_whisper_requires_audio(configuration, sdk_transport):
    async with client_for(make_server(configuration, sdk_transport)) as client:
        response = await client.post("/api/whisper", data={"language": "ja"})

    assert response.status_code == 400
    assert response.json() == {"error": "No audio file provided"}


async def test_whisper_forwards_with_defaults(configuration, sdk_transport):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.content
        return httpx.Response(200, json={"text": "こんにちは"})

    files = {"audio": ("recording.webm", b"\x1a\x45\xdf\xa3fake", "audio/webm")}
    async with client_for(make_server(configuration, sdk_transport, handler)) as client:
        response = await client.post("/api/whisper", files=files)

    assert response.status_code == 200
    assert response.json() == {"text": "こんにちは"}
    assert seen["url"] == f"{PROVIDER_URL}/audio/transcriptions"
    assert b"whisper-large-v3-turbo" in seen["body"]
    assert b'name="language"\r\n\r\nja\r\n' in seen["body"]
    assert b'name="response_format"\r\n\r\njson\r\n' in seen["body"]
    assert b'name="file"; filename="recording.webm"' in seen["body"]


async def test_whisper_passes_model_and_language(configuration, sdk_transport):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = request.content
        return httpx.Response(200, json={"text": "hello"})

    files = {"audio": ("clip.webm", b"audio", "audio/webm")}
    data = {"model": "whisper-large-v3", "language": "en"}
    async with client_for(make_server(configuration, sdk_transport, handler)) as client:
        response = await client.post("/api/whisper", files=files, data=data)

    assert response.json() == {"text": "hello"}
    assert b'name="model"\r\n\r\nwhisper-large-v3\r\n' in seen["body"]
    assert b'name="language"\r\n\r\nen\r\n' in seen["body"]


@pytest.mark.parametrize(
    ("handler", "message"),
    [
        (lambda request: httpx.Response(500, json={"error": {"message": "upstream down"}}), "Transcription failed"),
        (lambda request: httpx.Response(200, content=b"not json"), "Internal server error"),
    ],
)
async def test_whisper_failures(configuration, sdk_transport, handler, message):
    files = {"audio": ("recording.webm", b"audio", "audio/webm")}

    async with client_for(make_server(configuration, sdk_transport, handler)) as client:
        response = await client.post("/api/whisper", files=files)

    assert response.status_code == 500
    assert response.json() == {"error": message}
