"""
Duplex recognition channel interface.

A channel opens one exchange per turn: the client writes a setup message and
then audio frames, while the server emits recognition events. The session
only talks to these classes, so any streaming backend can sit behind them.
"""

from dataclasses import dataclass, field
from typing import AsyncIterator

from utils.events import RecognitionEvent


@dataclass
class InputAudioSettings:
    """Encoding of the audio the client sends."""
    encoding: str = "LINEAR16"
    sample_rate_hz: int = 16000
    language_code: str = "en-US"


@dataclass
class OutputAudioSettings:
    """Encoding of the synthesized audio the server returns."""
    encoding: str = "LINEAR16"
    sample_rate_hz: int = 16000


@dataclass
class StreamSetup:
    """First message on every exchange, sent before any audio frame."""
    session_id: str
    audio_config: InputAudioSettings = field(default_factory=InputAudioSettings)
    single_utterance: bool = True
    output_audio_config: OutputAudioSettings = field(default_factory=OutputAudioSettings)


class RecognitionExchange:
    """One open duplex exchange."""

    async def send_audio(self, chunk: bytes) -> None:
        """Queue an input audio frame. Ignored once the exchange has ended."""
        raise NotImplementedError

    def events(self) -> AsyncIterator[RecognitionEvent]:
        """
        Iterate server events in the order the server produced them.

        Raises:
            ChannelError: on transport or service failure
        """
        raise NotImplementedError

    async def end(self) -> None:
        """Half-close and release the exchange. Must be idempotent."""
        raise NotImplementedError


class RecognitionChannel:
    """Factory for exchanges with a streaming recognition service."""

    async def open(self, setup: StreamSetup) -> RecognitionExchange:
        """
        Open an exchange whose first message is ``setup``.

        Raises:
            ChannelError: if the exchange cannot be established
        """
        raise NotImplementedError
