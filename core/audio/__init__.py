"""
Audio device layer for the voice conversation front end.

This module provides:
- Microphone capture as an async frame stream with silence auto-stop
- Drain-aware playback with output device arbitration
- Pre-recorded alert sounds for timers
"""

from .capture import (
    AudioConfig,
    VoiceActivityDetector,
    MicrophoneStream
)

from .playback import (
    PlaybackConfig,
    PlaybackPolicy,
    OutputDevice,
    AudioPlayback,
    AlertSound,
    decode_pcm
)

__all__ = [
    # Configurations
    'AudioConfig',
    'PlaybackConfig',
    'PlaybackPolicy',

    # Capture
    'VoiceActivityDetector',
    'MicrophoneStream',

    # Playback
    'OutputDevice',
    'AudioPlayback',
    'AlertSound',
    'decode_pcm'
]
