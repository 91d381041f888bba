"""
Streaming speech and intent recognition.

Provides the duplex channel interface, its Dialogflow implementation and the
per-turn streaming session that races recognition against a silence timeout.
"""

from .channel import (
    InputAudioSettings,
    OutputAudioSettings,
    StreamSetup,
    RecognitionExchange,
    RecognitionChannel,
)
from .session import SessionState, StreamConfig, StreamingConversationSession

__all__ = [
    "InputAudioSettings",
    "OutputAudioSettings",
    "StreamSetup",
    "RecognitionExchange",
    "RecognitionChannel",
    "SessionState",
    "StreamConfig",
    "StreamingConversationSession",
]
