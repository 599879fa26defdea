"""
Chat Data Models

Conversation state, the chat request payload, and the normalized stream
event union shared by the backend and the frontend client.
All strongly typed with Pydantic for validation and type safety.
"""

from __future__ import annotations

import itertools
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

DEFAULT_MODEL = "llama-3.3-70b-versatile"
DEFAULT_TEMPERATURE = 0.7

_turn_ids = itertools.count(1)


# ==============================================================================
# CONVERSATION STATE
# ==============================================================================


class TurnFinalizedError(RuntimeError):
    """Raised when a finished assistant turn is mutated."""


class Turn(BaseModel):
    """One message in a conversation."""

    id: int = Field(default_factory=lambda: next(_turn_ids))
    role: Literal["user", "assistant", "system"]
    content: str = ""
    finalized: bool = False

    def to_api(self) -> dict[str, str]:
        """Role/content pair as sent to the chat route."""
        return {"role": self.role, "content": self.content}


class Conversation(BaseModel):
    """Ordered turns; insertion order is display order and model-input order."""

    turns: list[Turn] = Field(default_factory=list)  # type: ignore

    def add_user_turn(self, content: str) -> Turn:
        turn = Turn(role="user", content=content, finalized=True)
        self.turns.append(turn)
        return turn

    def add_assistant_turn(self, content: str = "") -> Turn:
        turn = Turn(role="assistant", content=content)
        self.turns.append(turn)
        return turn

    def get_turn(self, turn_id: int) -> Turn | None:
        return next((t for t in reversed(self.turns) if t.id == turn_id), None)

    def update_assistant_turn(self, turn_id: int, content: str) -> Turn:
        """Replace the content of the in-flight assistant turn."""
        turn = self.get_turn(turn_id)
        if turn is None or turn.role != "assistant":
            raise KeyError(f"No assistant turn with id {turn_id}")
        if turn.finalized:
            raise TurnFinalizedError(f"Turn {turn_id} is finalized")
        if self.turns[-1] is not turn:
            raise TurnFinalizedError(f"Turn {turn_id} is not the most recent turn")
        turn.content = content
        return turn

    def finalize_turn(self, turn_id: int) -> None:
        turn = self.get_turn(turn_id)
        if turn is not None:
            turn.finalized = True

    def get_api_format(self) -> list[dict[str, str]]:
        """Get conversation in the shape the chat route expects."""
        return [turn.to_api() for turn in self.turns]

    def reset(self) -> None:
        self.turns.clear()


# ==============================================================================
# REQUEST MODELS
# ==============================================================================


class ChatMessage(BaseModel):
    """Role/content pair inside a chat request."""

    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    """Body of POST /api/chat."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage]
    model: str = DEFAULT_MODEL
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=1.0)
    enable_web_search: bool = Field(default=False, alias="enableWebSearch")

    def get_api_messages(self) -> list[dict[str, Any]]:
        return [msg.model_dump() for msg in self.messages]


class TranscriptionResponse(BaseModel):
    text: str


class ErrorResponse(BaseModel):
    error: str


# ==============================================================================
# NORMALIZED STREAM EVENTS
# ==============================================================================


class EventType(StrEnum):
    TEXT_DELTA = "text-delta"
    REASONING_DELTA = "reasoning-delta"
    TOOL_CALL_DELTA = "tool-call-delta"
    TOOL_RESULT = "tool-result"
    ERROR = "error"
    FINISH = "finish"


class TextDeltaEvent(BaseModel):
    type: Literal["text-delta"] = "text-delta"
    delta: str


class ReasoningDeltaEvent(BaseModel):
    type: Literal["reasoning-delta"] = "reasoning-delta"
    delta: str


class ToolCallDeltaEvent(BaseModel):
    type: Literal["tool-call-delta"] = "tool-call-delta"
    delta: str


class ToolResultEvent(BaseModel):
    type: Literal["tool-result"] = "tool-result"
    result: Any = None


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    error: str


class FinishEvent(BaseModel):
    type: Literal["finish"] = "finish"


NormalizedEvent = Annotated[
    TextDeltaEvent
    | ReasoningDeltaEvent
    | ToolCallDeltaEvent
    | ToolResultEvent
    | ErrorEvent
    | FinishEvent,
    Field(discriminator="type"),
]

normalized_event_adapter: TypeAdapter[NormalizedEvent] = TypeAdapter(NormalizedEvent)


def parse_event(data: dict[str, Any]) -> NormalizedEvent:
    """Validate a decoded envelope into its event model."""
    return normalized_event_adapter.validate_python(data)


# ==============================================================================
# CLIENT SETTINGS
# ==============================================================================


class ChatSettings(BaseModel):
    """User-facing settings persisted by the frontend."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    llm_model: str = Field(default=DEFAULT_MODEL, alias="llmModel")
    speech_recognition: str = Field(default="web-speech-api", alias="speechRecognition")
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=1.0)
    language: str = "en-US"
    enable_web_search: bool = Field(default=False, alias="enableWebSearch")
