"""Shared test fakes for the microphone, recognition channel and playback."""
import asyncio
from typing import List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

from core.recognition.channel import StreamSetup


FRAME = b"\x10\x00" * 160  # 10ms of quiet 16kHz audio


class FakeMicrophone:
    """Stands in for MicrophoneStream; frames are pushed by the test."""

    def __init__(self, chunks=(FRAME, FRAME, FRAME)):
        self._queue: asyncio.Queue = asyncio.Queue()
        for chunk in chunks:
            self._queue.put_nowait(chunk)
        self.opened = False
        self.closed = False
        self.close_calls = 0

    def open(self):
        self.opened = True

    async def frames(self):
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk

    def close(self):
        self.close_calls += 1
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(None)


class FakeExchange:
    """Scripted duplex exchange: the test emits server events."""

    def __init__(self):
        self.sent: List[bytes] = []
        self._events: asyncio.Queue = asyncio.Queue()
        self.end_calls = 0
        self.ended = False

    def emit(self, *events):
        for event in events:
            self._events.put_nowait(event)

    def close_stream(self):
        self._events.put_nowait(None)

    def fail(self, error: Exception):
        self._events.put_nowait(error)

    async def send_audio(self, chunk: bytes):
        if not self.ended:
            self.sent.append(chunk)

    async def events(self):
        while True:
            item = await self._events.get()
            if item is None:
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    async def end(self):
        self.end_calls += 1
        self.ended = True


class FakeChannel:
    """Hands out prepared exchanges in order and records setup messages."""

    def __init__(self, exchanges: Optional[List[FakeExchange]] = None, error: Optional[Exception] = None):
        self.exchanges = list(exchanges or [])
        self.error = error
        self.setups: List[StreamSetup] = []

    async def open(self, setup: StreamSetup):
        self.setups.append(setup)
        if self.error is not None:
            raise self.error
        return self.exchanges.pop(0) if self.exchanges else FakeExchange()


@pytest.fixture
def microphone():
    return FakeMicrophone()


@pytest.fixture
def exchange():
    return FakeExchange()


@pytest.fixture
def channel(exchange):
    return FakeChannel([exchange])


@pytest.fixture
def playback():
    """AudioPlayback double whose play() completes immediately."""
    mock = Mock()
    mock.play = AsyncMock(return_value=None)
    return mock
