"""Clients package containing the LLM and transcription clients."""

from __future__ import annotations

from .errors import RATE_LIMIT_MESSAGE, UpstreamError, UpstreamHTTPError
from .llm_client import LLMClient, SDKChatTransport, SearchChatTransport
from .transcription_client import TranscriptionClient

__all__ = [
    "RATE_LIMIT_MESSAGE",
    "LLMClient",
    "SDKChatTransport",
    "SearchChatTransport",
    "TranscriptionClient",
    "UpstreamError",
    "UpstreamHTTPError",
]
