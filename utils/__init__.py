"""
Shared utilities for voicestream: events, errors, metrics, hotkey handling.
"""

from .errors import (
    VoiceStreamError,
    ConfigurationError,
    ChannelError,
    CompletionTimeoutError,
    DeviceError,
    DeviceBusyError,
)
from .events import (
    QueryResult,
    InterimTranscript,
    QueryResultEvent,
    OutputAudio,
    RecognitionEvent,
    Turn,
)

__all__ = [
    "VoiceStreamError",
    "ConfigurationError",
    "ChannelError",
    "CompletionTimeoutError",
    "DeviceError",
    "DeviceBusyError",
    "QueryResult",
    "InterimTranscript",
    "QueryResultEvent",
    "OutputAudio",
    "RecognitionEvent",
    "Turn",
]
