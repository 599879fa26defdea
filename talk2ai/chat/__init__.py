"""
Chat Module

Conversation state, normalized stream events, and the streaming translation
between the provider and the frontend.
"""

from .models import (
    ChatRequest,
    ChatSettings,
    Conversation,
    EventType,
    NormalizedEvent,
    Turn,
)

__all__ = [
    "ChatRequest",
    "ChatSettings",
    "Conversation",
    "EventType",
    "NormalizedEvent",
    "Turn",
]
