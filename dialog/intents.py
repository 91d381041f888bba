"""
Intent dispatch for recognized query results.

Intents form a closed set; every member has a handler in the dispatch table,
and names the service returns that are not in the set map to UNKNOWN.
"""

import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Tuple

from utils.events import QueryResult
from .scheduler import DeferredEventScheduler

logger = logging.getLogger(__name__)


class Intent(str, Enum):
    SET_TIMER = "SetTimer"
    UNKNOWN = "__unknown__"

    @classmethod
    def from_name(cls, name: str) -> "Intent":
        try:
            intent = cls(name)
        except ValueError:
            return cls.UNKNOWN
        return intent


def extract_duration(parameters: dict) -> Optional[Tuple[float, str]]:
    """
    Pull ``(amount, unit)`` out of a ``duration`` parameter.

    The service sends durations as ``{"amount": 10.0, "unit": "s"}``; an
    absent or malformed parameter yields None.
    """
    duration = parameters.get("duration")
    if not isinstance(duration, dict):
        return None

    amount = duration.get("amount")
    unit = duration.get("unit")
    if not isinstance(amount, (int, float)) or isinstance(amount, bool) or not unit:
        return None

    return float(amount), str(unit)


class IntentDispatcher:
    """Runs the side effects of a recognized intent before its audio plays."""

    def __init__(self, scheduler: DeferredEventScheduler):
        self.scheduler = scheduler
        self._handlers: Dict[Intent, Callable[[QueryResult], Awaitable[None]]] = {
            Intent.SET_TIMER: self._handle_set_timer,
            Intent.UNKNOWN: self._handle_default,
        }
        missing = set(Intent) - set(self._handlers)
        if missing:
            raise ValueError(f"No handler for intents: {sorted(i.value for i in missing)}")

    async def dispatch(self, result: QueryResult) -> Intent:
        """Handle a query result and return the intent it was routed to."""
        intent = Intent.from_name(result.intent_name)
        logger.info(f"Recognized intent {result.intent_name or '<none>'}")
        logger.debug(f"Parameters: {result.parameters}")

        await self._handlers[intent](result)
        return intent

    async def _handle_set_timer(self, result: QueryResult) -> None:
        duration = extract_duration(result.parameters)
        if duration is None:
            logger.info("SetTimer without a usable duration, nothing scheduled")
            return

        amount, unit = duration
        logger.info(f"Duration: {amount} unit: {unit}")
        self.scheduler.schedule(amount, unit)

    async def _handle_default(self, result: QueryResult) -> None:
        logger.debug(f"No side effects for intent '{result.intent_name}'")
