"""
Conversation loop: repeated turns until the service ends the conversation.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from core.audio.playback import AudioPlayback
from core.recognition.session import StreamingConversationSession
from .intents import IntentDispatcher

logger = logging.getLogger(__name__)


@dataclass
class ConversationResult:
    """How a conversation run ended."""
    session_id: str
    turns: int = 0
    ended_by: str = ""  # "silence" or "end_conversation"


class ConversationLoop:
    """
    Drives turns for one conversation.

    Each iteration runs a turn, dispatches its intent, plays the response on
    one channel and only then starts the next turn. A silent turn or the
    service's end_conversation flag stops the loop. Channel and device
    errors propagate to the caller.
    """

    def __init__(self,
                 session: StreamingConversationSession,
                 playback: AudioPlayback,
                 dispatcher: IntentDispatcher,
                 timeout_ms: Optional[int] = 3000,
                 session_id_factory: Callable[[], str] = lambda: str(uuid.uuid1())):
        self.session = session
        self.playback = playback
        self.dispatcher = dispatcher
        self.timeout_ms = timeout_ms
        self._session_id_factory = session_id_factory

    async def run(self) -> ConversationResult:
        result = ConversationResult(session_id=self._session_id_factory())
        logger.info(f"🎤 Listening (session {result.session_id})")

        while True:
            turn = await self.session.run_turn(result.session_id, self.timeout_ms)
            if turn.is_silent:
                result.ended_by = "silence"
                break

            result.turns += 1
            query_result = turn.query_result
            if query_result is not None:
                await self.dispatcher.dispatch(query_result)

            await self.playback.play(turn.audio, channels=1, owner="turn")

            if query_result is not None and query_result.end_conversation:
                result.ended_by = "end_conversation"
                break

        logger.info(f"Conversation {result.session_id} ended by {result.ended_by} after {result.turns} turn(s)")
        return result
