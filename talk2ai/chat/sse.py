"""
Server-Sent Events framing helpers.

Line buffering for incoming streams (shared by the backend normalizer and the
frontend reassembler) and envelope encoding for the UI message stream.
"""

from __future__ import annotations

import codecs

from pydantic import BaseModel

DATA_FIELD = "data:"
DATA_PREFIX = f"{DATA_FIELD} "
DONE_SENTINEL = "[DONE]"

UI_MESSAGE_STREAM_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
    "x-vercel-ai-ui-message-stream": "v1",
}
UI_MESSAGE_STREAM_MEDIA_TYPE = "text/event-stream"
TEXT_STREAM_MEDIA_TYPE = "text/plain; charset=utf-8"


class LineBuffer:
    """
    Rolling buffer that turns arbitrarily split reads into complete lines.

    Bytes are decoded incrementally so a multi-byte character split across
    two reads is reassembled. A trailing line without a terminator is held
    back until the next read or until flush().
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes | str) -> list[str]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk

        if "\n" not in self._buffer:
            return []

        *lines, self._buffer = self._buffer.split("\n")
        return [line.removesuffix("\r") for line in lines]

    def flush(self) -> list[str]:
        """Return the held-back partial line, if any, at end of stream."""
        self._buffer += self._decoder.decode(b"", final=True)
        rest, self._buffer = self._buffer, ""
        rest = rest.removesuffix("\r")
        return [rest] if rest else []

    @property
    def pending(self) -> str:
        return self._buffer


def encode_event(event: BaseModel) -> str:
    """Frame one event as an SSE envelope: ``data: {json}\\n\\n``."""
    return f"{DATA_PREFIX}{event.model_dump_json()}\n\n"
