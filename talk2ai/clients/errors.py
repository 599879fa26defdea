"""Typed upstream failures shared by the LLM and transcription clients."""

from __future__ import annotations

import json

import httpx

RATE_LIMIT_MESSAGE = "Rate limit reached. Please wait a moment and try again."
HTTP_TOO_MANY_REQUESTS = 429

_RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "too many requests")


class UpstreamError(Exception):
    """A request to the hosted provider failed."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def is_rate_limited(self) -> bool:
        text = self.message.lower()
        return any(marker in text for marker in _RATE_LIMIT_MARKERS)

    @property
    def user_message(self) -> str:
        """Message suitable for the end user."""
        if self.is_rate_limited:
            return RATE_LIMIT_MESSAGE
        return self.message


class UpstreamHTTPError(UpstreamError):
    """Non-2xx response from the provider, with status surfaced."""

    def __init__(self, status_code: int, status_text: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.status_text = status_text

    def __str__(self) -> str:
        return f"{self.status_code} {self.status_text}: {self.message}"

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == HTTP_TOO_MANY_REQUESTS or super().is_rate_limited

    @classmethod
    def from_response(cls, response: httpx.Response, body: str) -> UpstreamHTTPError:
        """Build from an httpx response whose body has already been read."""
        status_text = response.reason_phrase or httpx.codes.get_reason_phrase(response.status_code)
        return cls(response.status_code, status_text, extract_error_message(body) or status_text)


def extract_error_message(body: str) -> str:
    """Pull the human-readable message out of a provider error body."""
    body = body.strip()
    if not body:
        return ""
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return body[:500]

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        if data.get("message"):
            return str(data["message"])
    return body[:500]
