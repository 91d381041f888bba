"""
Text-to-Speech (TTS) module.

Integrates Google Cloud Text-to-Speech for synthesizing SSML prompts outside
of a recognition exchange.
"""

from .google_tts import (
    SpeechSynthesizer,
    SynthesisConfig,
    TTSResult,
)

__all__ = [
    "SpeechSynthesizer",
    "SynthesisConfig",
    "TTSResult",
]
