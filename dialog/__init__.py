"""
Dialog package for voicestream.

Provides the conversation loop, intent dispatch and voice-set timers.
"""

from .scheduler import (
    TimeUnit,
    TimerRequest,
    TimerHandle,
    DeferredEventScheduler,
)

from .intents import (
    Intent,
    IntentDispatcher,
    extract_duration,
)

from .loop import (
    ConversationLoop,
    ConversationResult,
)

__all__ = [
    "TimeUnit",
    "TimerRequest",
    "TimerHandle",
    "DeferredEventScheduler",
    "Intent",
    "IntentDispatcher",
    "extract_duration",
    "ConversationLoop",
    "ConversationResult",
]
