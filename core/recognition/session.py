"""
Streaming conversation session.

Owns one duplex exchange per turn: pipes microphone frames into the
recognition channel, interprets server events and resolves with either a
completed Turn or a silent one. Two triggers race for the outcome:

- output audio received (resolved turn)
- inactivity timeout with no transcript seen (silent turn)

Whichever fires first wins; the resolve-once guard turns the other into a
no-op. Capture and channel are released on every exit path.

State machine:
    IDLE -> CAPTURING -> (FINAL_HEARD | TIMED_OUT) -> AWAITING_COMPLETION -> RESOLVED
    TIMED_OUT with no activity goes straight to RESOLVED; errors end in FAILED.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from core.audio.capture import AudioConfig, MicrophoneStream
from utils.errors import ChannelError, CompletionTimeoutError
from utils.events import (
    InterimTranscript,
    OutputAudio,
    QueryResult,
    QueryResultEvent,
    RecognitionEvent,
    Turn,
)
from utils.metrics import timer
from .channel import (
    InputAudioSettings,
    OutputAudioSettings,
    RecognitionChannel,
    RecognitionExchange,
    StreamSetup,
)

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    FINAL_HEARD = "final_heard"
    TIMED_OUT = "timed_out"
    AWAITING_COMPLETION = "awaiting_completion"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass
class StreamConfig:
    """
    Recognition stream parameters.

    Defaults match the capture format (LINEAR16, 16 kHz, mono) and ask the
    service for LINEAR16 output at the same rate. completion_timeout_ms
    bounds the wait between the final transcript and output audio; None
    waits forever.
    """
    encoding: str = "LINEAR16"
    sample_rate_hz: int = 16000
    language_code: str = "en-US"
    single_utterance: bool = True
    output_encoding: str = "LINEAR16"
    output_sample_rate_hz: int = 16000
    completion_timeout_ms: Optional[int] = 15000

    def setup_for(self, session_id: str) -> StreamSetup:
        """Build the setup message for a session."""
        return StreamSetup(
            session_id=session_id,
            audio_config=InputAudioSettings(
                encoding=self.encoding,
                sample_rate_hz=self.sample_rate_hz,
                language_code=self.language_code,
            ),
            single_utterance=self.single_utterance,
            output_audio_config=OutputAudioSettings(
                encoding=self.output_encoding,
                sample_rate_hz=self.output_sample_rate_hz,
            ),
        )


class StreamingConversationSession:
    """
    Runs single turns against a recognition channel.

    One session object may run many turns, but only one at a time.
    """

    def __init__(self,
                 channel: RecognitionChannel,
                 config: Optional[StreamConfig] = None,
                 audio_config: Optional[AudioConfig] = None,
                 microphone_factory: Callable[[AudioConfig], MicrophoneStream] = MicrophoneStream):
        self.channel = channel
        self.config = config or StreamConfig()
        self.audio_config = audio_config or AudioConfig(sample_rate=self.config.sample_rate_hz)
        self._microphone_factory = microphone_factory

        self.state = SessionState.IDLE
        self._resolution: Optional[asyncio.Future] = None
        self._microphone: Optional[MicrophoneStream] = None
        self._exchange: Optional[RecognitionExchange] = None
        self._capture_open = False
        self._channel_open = False
        self._heard_speech = False
        self._pending_result: Optional[QueryResult] = None
        self._completion_handle: Optional[asyncio.TimerHandle] = None

    async def run_turn(self, session_id: str, timeout_ms: Optional[int] = None) -> Turn:
        """
        Run one duplex exchange.

        Args:
            session_id: Conversation identifier passed to the service
            timeout_ms: Give up with a silent Turn if no transcript arrives in time;
                None or 0 waits indefinitely

        Returns:
            Resolved Turn with audio, or silent Turn() on timeout

        Raises:
            ChannelError: service or transport failure, including completion timeout
            DeviceError: microphone could not be opened or read
        """
        if self.state not in (SessionState.IDLE, SessionState.RESOLVED, SessionState.FAILED):
            raise RuntimeError(f"Turn already in progress (state={self.state.value})")

        loop = asyncio.get_running_loop()
        self._resolution = loop.create_future()
        self._heard_speech = False
        self._pending_result = None
        self._completion_handle = None
        self._transition(SessionState.IDLE)

        self._microphone = self._microphone_factory(self.audio_config)
        try:
            self._microphone.open()
        except BaseException:
            self._transition(SessionState.FAILED)
            raise
        self._capture_open = True

        try:
            with timer("channel_open"):
                self._exchange = await self.channel.open(self.config.setup_for(session_id))
        except BaseException:
            self._close_capture()
            self._transition(SessionState.FAILED)
            raise
        self._channel_open = True
        self._transition(SessionState.CAPTURING)

        tasks: List[asyncio.Task] = [
            asyncio.create_task(self._pump_audio(), name="session_pump"),
            asyncio.create_task(self._listen(), name="session_listen"),
        ]
        timeout_handle = None
        if timeout_ms:
            timeout_handle = loop.call_later(timeout_ms / 1000, self._on_timeout)

        try:
            with timer("turn"):
                return await self._resolution
        finally:
            if timeout_handle is not None:
                timeout_handle.cancel()
            if self._completion_handle is not None:
                self._completion_handle.cancel()
            self._close_capture()
            await self._end_channel()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _pump_audio(self) -> None:
        """Forward captured frames until the microphone closes."""
        try:
            async for chunk in self._microphone.frames():
                await self._exchange.send_audio(chunk)
        except Exception as e:
            self._fail(e)

    async def _listen(self) -> None:
        """Consume server events until the turn is decided."""
        try:
            async for event in self._exchange.events():
                await self._handle_event(event)
                if self._resolution.done():
                    return
        except Exception as e:
            self._fail(e)
            return

        self._fail(ChannelError("Recognition stream closed before output audio"))

    async def _handle_event(self, event: RecognitionEvent) -> None:
        if isinstance(event, InterimTranscript):
            self._heard_speech = True
            logger.info(f"Intermediate transcript: {event.text}")
            if event.is_final and self.state is SessionState.CAPTURING:
                logger.info("Result is final")
                self._transition(SessionState.FINAL_HEARD)
                self._close_capture()
                self._transition(SessionState.AWAITING_COMPLETION)
                self._arm_completion_bound()

        elif isinstance(event, QueryResultEvent):
            logger.info(f"Fulfillment text: {event.result.fulfillment_text}")
            self._pending_result = event.result

        elif isinstance(event, OutputAudio):
            if not event.audio:
                return
            if self._resolve(Turn(audio=event.audio, query_result=self._pending_result)):
                self._close_capture()
                await self._end_channel()

    def _arm_completion_bound(self) -> None:
        timeout_ms = self.config.completion_timeout_ms
        if timeout_ms is None:
            return
        loop = asyncio.get_running_loop()
        self._completion_handle = loop.call_later(
            timeout_ms / 1000, self._fail, CompletionTimeoutError(timeout_ms)
        )

    def _on_timeout(self) -> None:
        if self._resolution.done() or self._heard_speech:
            return
        logger.info("No speech before timeout, ending turn")
        self._transition(SessionState.TIMED_OUT)
        self._close_capture()
        self._resolve(Turn())

    def _resolve(self, turn: Turn) -> bool:
        """Settle the turn once. Returns False if it was already settled."""
        if self._resolution.done():
            return False
        self._resolution.set_result(turn)
        self._transition(SessionState.RESOLVED)
        return True

    def _fail(self, error: BaseException) -> bool:
        if self._resolution is None or self._resolution.done():
            return False
        logger.error(f"Turn failed: {error}")
        self._resolution.set_exception(error)
        self._transition(SessionState.FAILED)
        return True

    def _close_capture(self) -> None:
        if not self._capture_open:
            return
        self._capture_open = False
        self._microphone.close()

    async def _end_channel(self) -> None:
        if not self._channel_open:
            return
        self._channel_open = False
        await self._exchange.end()

    def _transition(self, new_state: SessionState) -> None:
        if new_state is not self.state:
            logger.debug(f"Session state: {self.state.value} -> {new_state.value}")
        self.state = new_state
