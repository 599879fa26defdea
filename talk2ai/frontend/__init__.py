"""
Frontend Module

Client side of the chat route: stream reassembly, the chat session, persisted
settings and voice capture.
"""

from .reassembler import StreamReassembler
from .session import ChatBusyError, ChatSession
from .settings_store import SettingsStore
from .voice import RemoteTranscriber, VoiceCapture

__all__ = [
    "ChatBusyError",
    "ChatSession",
    "RemoteTranscriber",
    "SettingsStore",
    "StreamReassembler",
    "VoiceCapture",
]
