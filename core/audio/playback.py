"""
Audio playback module with output device arbitration and alert sounds.

Plays LINEAR16 buffers through sounddevice and resolves only once the device
has drained them. Turn responses and timer alerts share one output device;
OutputDevice decides who gets it when both ask at once.
"""

import asyncio
import io
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

import numpy as np
import sounddevice as sd
from scipy.io import wavfile

from utils.errors import DeviceBusyError, DeviceError
from utils.metrics import timer

logger = logging.getLogger(__name__)

BYTES_PER_SAMPLE = 2  # int16


class PlaybackPolicy(str, Enum):
    """What a playback does when the output device is already claimed."""
    SERIALIZE = "serialize"  # wait for the current holder, FIFO
    REJECT = "reject"        # fail with DeviceBusyError


@dataclass
class PlaybackConfig:
    """Audio playback configuration."""
    sample_rate: int = 16000
    dtype: str = 'int16'
    device: Optional[int] = None  # Use default output device
    policy: PlaybackPolicy = PlaybackPolicy.SERIALIZE


class OutputDevice:
    """
    Exclusive claim on the shared output device.

    acquire() must wrap every playback; release happens when the context
    exits, whether playback finished or failed.
    """

    def __init__(self, policy: PlaybackPolicy = PlaybackPolicy.SERIALIZE):
        self.policy = PlaybackPolicy(policy)
        self._lock = asyncio.Lock()
        self.holder: Optional[str] = None

    def is_busy(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def acquire(self, owner: str):
        if self.policy is PlaybackPolicy.REJECT and self._lock.locked():
            raise DeviceBusyError(owner, self.holder or "unknown")

        if self._lock.locked():
            logger.debug(f"Output device held by '{self.holder}', '{owner}' waiting")

        async with self._lock:
            self.holder = owner
            try:
                yield self
            finally:
                self.holder = None


def decode_pcm(buffer: bytes) -> bytes:
    """
    Return raw int16 PCM for a LINEAR16 buffer.

    The recognition service wraps LINEAR16 output in a WAV container; a
    buffer starting with a RIFF header is decoded, anything else is assumed
    to already be raw PCM.
    """
    if buffer[:4] != b"RIFF":
        return buffer

    _, audio = wavfile.read(io.BytesIO(buffer))
    if audio.dtype != np.int16:
        audio = _to_int16(audio)
    return audio.tobytes()


def _to_int16(audio: np.ndarray) -> np.ndarray:
    """Convert any wavfile dtype to int16."""
    if audio.dtype == np.int16:
        return audio
    if audio.dtype == np.int32:
        return (audio >> 16).astype(np.int16)
    if audio.dtype == np.uint8:
        return ((audio.astype(np.int16) - 128) << 8).astype(np.int16)
    # float wav data in [-1.0, 1.0]
    return (np.clip(audio, -1.0, 1.0) * 32767).astype(np.int16)


class AudioPlayback:
    """
    Drain-aware playback for turn responses and alerts.

    play() returns after the device reports the buffer fully played, not when
    it is merely queued.
    """

    def __init__(self, config: Optional[PlaybackConfig] = None,
                 output_device: Optional[OutputDevice] = None):
        self.config = config or PlaybackConfig()
        self.output_device = output_device or OutputDevice(self.config.policy)

    async def play(self, buffer: bytes, channels: int = 1, owner: str = "turn") -> None:
        """
        Play a LINEAR16 buffer and wait for completion.

        Args:
            buffer: Raw PCM or WAV-wrapped LINEAR16 audio
            channels: Interleaved channel count of the buffer (1 or 2)
            owner: Name recorded as the device holder, for logs

        Raises:
            DeviceError: if the output device cannot be opened
            DeviceBusyError: if the device is claimed under the reject policy
        """
        pcm = decode_pcm(buffer)
        frame_bytes = BYTES_PER_SAMPLE * channels
        usable = len(pcm) - (len(pcm) % frame_bytes)
        if usable == 0:
            logger.debug(f"Nothing to play for '{owner}'")
            return

        async with self.output_device.acquire(owner):
            logger.debug(f"Playing {usable} bytes on {channels} channel(s) for '{owner}'")
            loop = asyncio.get_running_loop()
            with timer("playback"):
                await loop.run_in_executor(None, self._play_blocking, pcm[:usable], channels)

    def _play_blocking(self, pcm: bytes, channels: int) -> None:
        """Write the buffer and block until drained (runs in executor)."""
        try:
            with sd.RawOutputStream(
                samplerate=self.config.sample_rate,
                channels=channels,
                dtype=self.config.dtype,
                device=self.config.device,
            ) as stream:
                stream.write(pcm)
            # leaving the context stops the stream, which waits for pending buffers
        except sd.PortAudioError as e:
            raise DeviceError(f"Cannot play audio on output device: {e}") from e


class AlertSound:
    """Pre-recorded alert loaded once and kept as stereo LINEAR16 bytes."""

    CHANNELS = 2

    def __init__(self, path: Union[str, Path], sample_rate: int = 16000):
        self.path = Path(path)
        self.sample_rate = sample_rate
        self.buffer: bytes = self._load()

    def _load(self) -> bytes:
        """Load the alert file, falling back to a generated tone."""
        if not self.path.exists():
            logger.warning(f"Alert sound not found at {self.path}, using generated tone")
            return self._to_stereo_bytes(self._generate_default_alert())

        try:
            sample_rate, audio = wavfile.read(self.path)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read alert sound {self.path}: {e}")
            return self._to_stereo_bytes(self._generate_default_alert())

        return self._to_stereo_bytes(self._prepare_audio(audio, sample_rate))

    def _prepare_audio(self, audio: np.ndarray, original_sample_rate: int) -> np.ndarray:
        """Convert to int16 at the playback rate, keeping up to two channels."""
        audio = _to_int16(audio)

        if audio.ndim > 1 and audio.shape[1] > self.CHANNELS:
            audio = audio[:, :self.CHANNELS]

        if original_sample_rate != self.sample_rate:
            ratio = self.sample_rate / original_sample_rate
            new_length = int(len(audio) * ratio)
            positions = np.linspace(0, len(audio) - 1, new_length)
            if audio.ndim == 1:
                audio = np.interp(positions, np.arange(len(audio)), audio)
            else:
                audio = np.column_stack([
                    np.interp(positions, np.arange(len(audio)), audio[:, ch])
                    for ch in range(audio.shape[1])
                ])
            audio = audio.astype(np.int16)

        return audio

    def _generate_default_alert(self, frequency: float = 880.0, beeps: int = 3) -> np.ndarray:
        """Generate a short beeping sine wave as fallback."""
        beep = int(self.sample_rate * 0.2)
        gap = np.zeros(int(self.sample_rate * 0.1))
        t = np.linspace(0, 0.2, beep, False)
        wave = np.sin(2 * np.pi * frequency * t)

        fade_samples = int(0.01 * self.sample_rate)  # 10ms fade
        wave[:fade_samples] *= np.linspace(0, 1, fade_samples)
        wave[-fade_samples:] *= np.linspace(1, 0, fade_samples)

        pattern = np.concatenate([np.concatenate([wave, gap]) for _ in range(beeps)])
        return (pattern * 16383).astype(np.int16)  # 50% volume

    def _to_stereo_bytes(self, audio: np.ndarray) -> bytes:
        if audio.ndim == 1:
            audio = np.column_stack([audio, audio])
        elif audio.shape[1] == 1:
            audio = np.repeat(audio, self.CHANNELS, axis=1)
        return np.ascontiguousarray(audio, dtype=np.int16).tobytes()
