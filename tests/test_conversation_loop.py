"""
Tests for the conversation loop and intent dispatch.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from core.recognition.session import StreamingConversationSession
from dialog.intents import Intent, IntentDispatcher, extract_duration
from dialog.loop import ConversationLoop
from dialog.scheduler import DeferredEventScheduler
from utils.errors import ChannelError, DeviceError
from utils.events import OutputAudio, QueryResult, QueryResultEvent, Turn

from conftest import FakeChannel, FakeExchange, FakeMicrophone


class ScriptedSession:
    """Returns prepared turns (or raises prepared errors) in order."""

    def __init__(self, *turns, events=None):
        self.turns = list(turns)
        self.calls = []
        self.events = events if events is not None else []

    async def run_turn(self, session_id, timeout_ms=None):
        self.calls.append((session_id, timeout_ms))
        self.events.append("turn")
        item = self.turns.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


def timer_result(amount=10.0, unit="s", **kwargs) -> QueryResult:
    return QueryResult(
        intent_name="SetTimer",
        parameters={"duration": {"amount": amount, "unit": unit}},
        **kwargs,
    )


@pytest.fixture
def scheduler():
    mock = Mock()
    mock.schedule = Mock(return_value=None)
    return mock


@pytest.fixture
def dispatcher(scheduler):
    return IntentDispatcher(scheduler)


class TestIntent:
    """Test intent name mapping."""

    def test_known_name(self):
        assert Intent.from_name("SetTimer") is Intent.SET_TIMER

    @pytest.mark.parametrize("name", ["Default Welcome Intent", "", "settimer"])
    def test_unknown_names(self, name):
        assert Intent.from_name(name) is Intent.UNKNOWN


class TestExtractDuration:
    """Test duration parameter extraction."""

    def test_valid_duration(self):
        assert extract_duration({"duration": {"amount": 10, "unit": "s"}}) == (10.0, "s")

    @pytest.mark.parametrize("parameters", [
        {},
        {"duration": ""},
        {"duration": {"amount": 10}},
        {"duration": {"unit": "s"}},
        {"duration": {"amount": "ten", "unit": "s"}},
        {"duration": {"amount": True, "unit": "s"}},
    ])
    def test_malformed_duration(self, parameters):
        assert extract_duration(parameters) is None


class TestIntentDispatcher:
    """Test the dispatch table."""

    @pytest.mark.asyncio
    async def test_set_timer_schedules(self, dispatcher, scheduler):
        intent = await dispatcher.dispatch(timer_result(5, "min"))

        assert intent is Intent.SET_TIMER
        scheduler.schedule.assert_called_once_with(5.0, "min")

    @pytest.mark.asyncio
    async def test_set_timer_without_duration(self, dispatcher, scheduler):
        await dispatcher.dispatch(QueryResult(intent_name="SetTimer"))

        scheduler.schedule.assert_not_called()

    @pytest.mark.asyncio
    async def test_other_intents_have_no_side_effects(self, dispatcher, scheduler):
        intent = await dispatcher.dispatch(QueryResult(intent_name="Default Welcome Intent"))

        assert intent is Intent.UNKNOWN
        scheduler.schedule.assert_not_called()

    def test_every_intent_has_a_handler(self, dispatcher):
        assert set(dispatcher._handlers) == set(Intent)


class TestConversationLoop:
    """Test turn sequencing and termination."""

    @pytest.mark.asyncio
    async def test_set_timer_then_silence(self, dispatcher, scheduler, playback):
        session = ScriptedSession(Turn(b"resp", timer_result()), Turn())
        loop = ConversationLoop(session, playback, dispatcher, timeout_ms=3000,
                                session_id_factory=lambda: "conv-1")

        result = await loop.run()

        scheduler.schedule.assert_called_once_with(10.0, "s")
        playback.play.assert_awaited_once_with(b"resp", channels=1, owner="turn")
        assert session.calls == [("conv-1", 3000), ("conv-1", 3000)]
        assert result.session_id == "conv-1"
        assert result.turns == 1
        assert result.ended_by == "silence"

    @pytest.mark.asyncio
    async def test_end_conversation_stops_after_playback(self, dispatcher, playback):
        ending = QueryResult(intent_name="Goodbye", diagnostic_info={"end_conversation": True})
        session = ScriptedSession(Turn(b"bye", ending), Turn(b"never"))
        loop = ConversationLoop(session, playback, dispatcher)

        result = await loop.run()

        playback.play.assert_awaited_once_with(b"bye", channels=1, owner="turn")
        assert len(session.calls) == 1
        assert result.ended_by == "end_conversation"

    @pytest.mark.asyncio
    async def test_immediate_silence_plays_nothing(self, dispatcher, playback):
        session = ScriptedSession(Turn())

        result = await ConversationLoop(session, playback, dispatcher).run()

        playback.play.assert_not_called()
        assert result.turns == 0

    @pytest.mark.asyncio
    async def test_turn_without_query_result_plays_and_continues(self, dispatcher, scheduler, playback):
        session = ScriptedSession(Turn(b"audio-only"), Turn())

        result = await ConversationLoop(session, playback, dispatcher).run()

        playback.play.assert_awaited_once_with(b"audio-only", channels=1, owner="turn")
        scheduler.schedule.assert_not_called()
        assert result.turns == 1

    @pytest.mark.asyncio
    async def test_next_turn_starts_after_playback_completes(self, dispatcher):
        events = []
        session = ScriptedSession(Turn(b"one", QueryResult()), Turn(b"two", QueryResult()), Turn(),
                                  events=events)

        async def play(audio, channels, owner):
            events.append("play-start")
            await asyncio.sleep(0.01)
            events.append("play-end")

        playback = Mock()
        playback.play = AsyncMock(side_effect=play)

        await ConversationLoop(session, playback, dispatcher).run()

        assert events == ["turn", "play-start", "play-end",
                          "turn", "play-start", "play-end",
                          "turn"]

    @pytest.mark.asyncio
    async def test_fresh_session_id_per_run(self, dispatcher, playback):
        session = ScriptedSession(Turn(), Turn())
        loop = ConversationLoop(session, playback, dispatcher)

        first = await loop.run()
        second = await loop.run()

        assert first.session_id != second.session_id

    @pytest.mark.asyncio
    async def test_channel_error_propagates(self, dispatcher, playback):
        session = ScriptedSession(Turn(b"one"), ChannelError("stream reset"))

        with pytest.raises(ChannelError, match="stream reset"):
            await ConversationLoop(session, playback, dispatcher).run()

        playback.play.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_device_error_propagates(self, dispatcher):
        playback = Mock()
        playback.play = AsyncMock(side_effect=DeviceError("no output"))
        session = ScriptedSession(Turn(b"one"), Turn())

        with pytest.raises(DeviceError):
            await ConversationLoop(session, playback, dispatcher).run()


class TestEndToEnd:
    """Full loop over a real session with a scripted channel."""

    @pytest.mark.asyncio
    async def test_timer_outlives_conversation(self, playback):
        first, second = FakeExchange(), FakeExchange()
        first.emit(QueryResultEvent(timer_result(0.2, "s")), OutputAudio(b"resp"))
        channel = FakeChannel([first, second])
        microphones = iter([FakeMicrophone(), FakeMicrophone()])
        session = StreamingConversationSession(channel, microphone_factory=lambda cfg: next(microphones))
        scheduler = DeferredEventScheduler(playback, b"\x07\x00\x07\x00", alert_channels=2)

        loop = ConversationLoop(session, playback, IntentDispatcher(scheduler), timeout_ms=30)
        result = await asyncio.wait_for(loop.run(), timeout=1.0)

        assert result.ended_by == "silence"
        assert [s.session_id for s in channel.setups] == [result.session_id] * 2
        [handle] = scheduler.pending
        assert not handle.fired

        await asyncio.wait_for(handle.task, timeout=1.0)

        assert handle.fired
        playback.play.assert_any_await(b"resp", channels=1, owner="turn")
        playback.play.assert_any_await(b"\x07\x00\x07\x00", channels=2, owner="timer-1")
