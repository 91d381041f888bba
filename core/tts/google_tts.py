"""
Google Cloud Text-to-Speech client.

Turns SSML into LINEAR16 audio with one unary request per call. Nothing is
cached: asking twice for the same markup issues two requests.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from google.api_core import exceptions as core_exceptions
from google.cloud import texttospeech

from utils.errors import ChannelError
from utils.metrics import timer

logger = logging.getLogger(__name__)


@dataclass
class SynthesisConfig:
    """Voice and output format for synthesis."""
    language_code: str = "en-US"
    voice_name: str = "en-US-Wavenet-D"
    encoding: str = "LINEAR16"
    sample_rate_hz: int = 16000


@dataclass
class TTSResult:
    """Result from text-to-speech synthesis."""
    audio: bytes
    sample_rate: int
    latency_ms: float
    ssml: str
    voice_name: str


class SpeechSynthesizer:
    """Async wrapper around TextToSpeechAsyncClient.synthesize_speech."""

    def __init__(self, config: Optional[SynthesisConfig] = None,
                 client: Optional[texttospeech.TextToSpeechAsyncClient] = None):
        self.config = config or SynthesisConfig()
        self._client = client

        logger.info(f"SpeechSynthesizer: voice={self.config.voice_name}, rate={self.config.sample_rate_hz}")

    @property
    def client(self) -> texttospeech.TextToSpeechAsyncClient:
        if self._client is None:
            self._client = texttospeech.TextToSpeechAsyncClient()
        return self._client

    async def synthesize(self, ssml: str) -> TTSResult:
        """
        Synthesize speech from SSML markup.

        Args:
            ssml: SSML document, e.g. ``<speak>Hello</speak>``

        Returns:
            TTSResult with LINEAR16 audio

        Raises:
            ChannelError: if the service call fails
        """
        start_time = time.monotonic()

        try:
            with timer("synthesis"):
                response = await self.client.synthesize_speech(
                    input=texttospeech.SynthesisInput(ssml=ssml),
                    voice=texttospeech.VoiceSelectionParams(
                        language_code=self.config.language_code,
                        name=self.config.voice_name,
                    ),
                    audio_config=texttospeech.AudioConfig(
                        audio_encoding=texttospeech.AudioEncoding[self.config.encoding.upper()],
                        sample_rate_hertz=self.config.sample_rate_hz,
                    ),
                )
        except core_exceptions.GoogleAPICallError as e:
            raise ChannelError(f"Speech synthesis failed: {e}") from e

        latency_ms = (time.monotonic() - start_time) * 1000
        logger.info(f"Synthesized {len(response.audio_content)} bytes in {latency_ms:.1f}ms")

        return TTSResult(
            audio=response.audio_content,
            sample_rate=self.config.sample_rate_hz,
            latency_ms=latency_ms,
            ssml=ssml,
            voice_name=self.config.voice_name,
        )
