"""
Tests for microphone capture with sounddevice patched out.
"""

import asyncio
import itertools
from unittest.mock import Mock, patch

import numpy as np
import pytest
import sounddevice as sd

from core.audio.capture import AudioConfig, MicrophoneStream, VoiceActivityDetector
from utils.errors import DeviceError


SILENCE = np.zeros(1600, dtype=np.int16).tobytes()
SPEECH = (np.ones(1600, dtype=np.int16) * 4000).tobytes()


class TestAudioConfig:
    """Test AudioConfig dataclass."""

    def test_default_config(self):
        config = AudioConfig()

        assert config.sample_rate == 16000
        assert config.channels == 1
        assert config.dtype == 'int16'
        assert config.chunk_size_samples == 1600


class TestVoiceActivityDetector:
    """Test energy-based silence tracking."""

    def test_silence_accumulates_until_threshold(self):
        clock = itertools.count(0.0, 0.5)
        vad = VoiceActivityDetector(AudioConfig(silence_seconds=1.0), clock=lambda: next(clock))

        assert vad.is_speech(np.frombuffer(SILENCE, dtype=np.int16)) is False
        assert not vad.should_stop_recording()
        vad.is_speech(np.frombuffer(SILENCE, dtype=np.int16))
        assert vad.should_stop_recording()

    def test_speech_resets_silence(self):
        clock = itertools.count(0.0, 0.5)
        vad = VoiceActivityDetector(AudioConfig(silence_seconds=1.0), clock=lambda: next(clock))

        vad.is_speech(np.frombuffer(SILENCE, dtype=np.int16))
        assert vad.is_speech(np.frombuffer(SPEECH, dtype=np.int16)) is True
        assert vad.silence_duration == 0.0

    def test_zero_silence_seconds_disables_auto_stop(self):
        vad = VoiceActivityDetector(AudioConfig(silence_seconds=0))
        vad.silence_duration = 100.0

        assert not vad.should_stop_recording()


class TestMicrophoneStream:
    """Test MicrophoneStream with a patched RawInputStream."""

    @pytest.mark.asyncio
    async def test_open_starts_raw_input_stream(self):
        with patch("core.audio.capture.sd.RawInputStream") as stream_cls:
            mic = MicrophoneStream(AudioConfig())
            mic.open()

        stream_cls.assert_called_once()
        kwargs = stream_cls.call_args.kwargs
        assert kwargs["samplerate"] == 16000
        assert kwargs["channels"] == 1
        assert kwargs["dtype"] == "int16"
        stream_cls.return_value.start.assert_called_once()
        mic.close()

    @pytest.mark.asyncio
    async def test_callback_frames_reach_iterator(self):
        with patch("core.audio.capture.sd.RawInputStream"):
            mic = MicrophoneStream(AudioConfig())
            mic.open()

        mic._audio_callback(SPEECH, 1600, None, None)
        mic._audio_callback(SPEECH, 1600, None, None)
        await asyncio.sleep(0)
        mic.close()

        frames = [chunk async for chunk in mic.frames()]
        assert frames == [SPEECH, SPEECH]

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        with patch("core.audio.capture.sd.RawInputStream") as stream_cls:
            mic = MicrophoneStream(AudioConfig())
            mic.open()

        mic.close()
        mic.close()

        assert mic.closed
        stream_cls.return_value.stop.assert_called_once()
        stream_cls.return_value.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_callback_after_close_is_dropped(self):
        with patch("core.audio.capture.sd.RawInputStream"):
            mic = MicrophoneStream(AudioConfig())
            mic.open()

        mic.close()
        mic._audio_callback(SPEECH, 1600, None, None)
        await asyncio.sleep(0)

        frames = [chunk async for chunk in mic.frames()]
        assert frames == []

    @pytest.mark.asyncio
    async def test_open_failure_raises_device_error(self):
        with patch("core.audio.capture.sd.RawInputStream",
                   side_effect=sd.PortAudioError("no input device")):
            mic = MicrophoneStream(AudioConfig())
            with pytest.raises(DeviceError, match="no input device"):
                mic.open()

        assert mic.closed

    @pytest.mark.asyncio
    async def test_prolonged_silence_auto_closes(self):
        config = AudioConfig(silence_seconds=0.5)
        with patch("core.audio.capture.sd.RawInputStream"):
            mic = MicrophoneStream(config)
            clock = itertools.count(0.0, 0.3)
            mic.vad = VoiceActivityDetector(config, clock=lambda: next(clock))
            mic.open()

        for _ in range(3):
            mic._audio_callback(SILENCE, 1600, None, None)
        await asyncio.sleep(0)

        frames = [chunk async for chunk in mic.frames()]

        assert mic.closed
        assert len(frames) == 3
