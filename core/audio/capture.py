"""
Audio capture module with silence auto-stop.

Implements callback-based microphone capture that hands raw 16-bit PCM
frames to the asyncio loop as they arrive, so the streaming session can
forward them to the recognition channel without buffering a whole utterance.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

import numpy as np
import sounddevice as sd

from utils.errors import DeviceError

logger = logging.getLogger(__name__)


@dataclass
class AudioConfig:
    """Capture format expected by the recognition service."""
    sample_rate: int = 16000
    channels: int = 1  # mono for speech recognition
    dtype: str = 'int16'  # LINEAR16
    chunk_size_ms: int = 100
    silence_threshold: float = 500.0  # RMS energy below which a chunk counts as silence
    silence_seconds: float = 10.0  # continuous silence before auto-stop
    device: Optional[int] = None  # Use default input device

    @property
    def chunk_size_samples(self) -> int:
        """Calculate chunk size in samples."""
        return int(self.sample_rate * self.chunk_size_ms / 1000)


class VoiceActivityDetector:
    """Simple energy-based Voice Activity Detection."""

    def __init__(self, config: AudioConfig, clock: Callable[[], float] = time.monotonic):
        self.config = config
        self._clock = clock
        self.silence_duration = 0.0
        self.last_check_time = clock()

    def is_speech(self, audio_chunk: np.ndarray) -> bool:
        """
        Detect if audio chunk contains speech based on energy.

        Args:
            audio_chunk: Audio data as numpy array

        Returns:
            True if speech detected, False if silence
        """
        energy = np.sqrt(np.mean(audio_chunk.astype(np.float32) ** 2)) if audio_chunk.size else 0.0

        current_time = self._clock()
        time_delta = current_time - self.last_check_time
        self.last_check_time = current_time

        if energy > self.config.silence_threshold:
            self.silence_duration = 0.0
            return True

        self.silence_duration += time_delta
        return False

    def should_stop_recording(self) -> bool:
        """Check if recording should stop due to prolonged silence."""
        if self.config.silence_seconds <= 0:
            return False
        return self.silence_duration >= self.config.silence_seconds

    def reset(self):
        """Reset VAD state for new recording session."""
        self.silence_duration = 0.0
        self.last_check_time = self._clock()


class MicrophoneStream:
    """
    Live microphone capture exposed as an async iterator of PCM frames.

    - Callback-based capture using sounddevice.RawInputStream
    - Frames cross from the PortAudio thread via call_soon_threadsafe
    - close() is idempotent and safe to call from any trigger
    """

    def __init__(self, config: Optional[AudioConfig] = None):
        self.config = config or AudioConfig()
        self.vad = VoiceActivityDetector(self.config)

        self._queue: asyncio.Queue = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stream: Optional[sd.RawInputStream] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> None:
        """
        Start the input stream.

        Raises:
            DeviceError: if the input device cannot be opened
        """
        if self._stream is not None or self._closed:
            return

        self._loop = asyncio.get_running_loop()
        self.vad.reset()

        try:
            self._stream = sd.RawInputStream(
                samplerate=self.config.sample_rate,
                channels=self.config.channels,
                dtype=self.config.dtype,
                blocksize=self.config.chunk_size_samples,
                device=self.config.device,
                callback=self._audio_callback,
            )
            self._stream.start()
        except sd.PortAudioError as e:
            self._stream = None
            self._closed = True
            raise DeviceError(f"Cannot open input device: {e}") from e

        logger.debug("Microphone opened")

    def _audio_callback(self, indata, frames, time_info, status):
        """
        Sounddevice callback for real-time audio capture.

        This runs in the PortAudio thread and should be fast.
        """
        if status:
            logger.debug(f"Audio callback status: {status}")

        if self._closed or self._loop is None:
            return

        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, bytes(indata))
        except RuntimeError:
            # loop already closed during shutdown
            pass

    async def frames(self) -> AsyncIterator[bytes]:
        """Yield captured frames until the stream is closed."""
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return

            yield chunk

            if self.vad.is_speech(np.frombuffer(chunk, dtype=np.int16)):
                continue
            if self.vad.should_stop_recording():
                logger.info(f"VAD: Auto-stopping capture after {self.vad.silence_duration:.1f}s silence")
                self.close()

    def close(self) -> None:
        """Stop capturing. Calling close on a closed stream is a no-op."""
        if self._closed:
            return
        self._closed = True

        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except sd.PortAudioError as e:
                logger.warning(f"Error closing input stream: {e}")
            finally:
                self._stream = None

        self._queue.put_nowait(None)
        logger.debug("Microphone closed")
