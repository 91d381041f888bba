"""
Deferred event scheduler for timers set by voice.

Each timer is a detached asyncio task: it outlives the conversation that
armed it and plays the alert through the shared output device when due.
Ending a conversation never cancels a timer; only process shutdown does.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set

from core.audio.playback import AudioPlayback
from utils.errors import DeviceError

logger = logging.getLogger(__name__)


class TimeUnit(str, Enum):
    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"
    YEARS = "years"

    @classmethod
    def parse(cls, unit: str) -> Optional["TimeUnit"]:
        """Map a unit name or service abbreviation to a TimeUnit, or None."""
        if not isinstance(unit, str):
            return None
        return UNIT_ALIASES.get(unit.strip().lower())


UNIT_ALIASES: Dict[str, TimeUnit] = {
    "s": TimeUnit.SECONDS, "sec": TimeUnit.SECONDS, "second": TimeUnit.SECONDS, "seconds": TimeUnit.SECONDS,
    "min": TimeUnit.MINUTES, "minute": TimeUnit.MINUTES, "minutes": TimeUnit.MINUTES,
    "h": TimeUnit.HOURS, "hour": TimeUnit.HOURS, "hours": TimeUnit.HOURS,
    "day": TimeUnit.DAYS, "days": TimeUnit.DAYS,
    "yr": TimeUnit.YEARS, "year": TimeUnit.YEARS, "years": TimeUnit.YEARS,
}

# Fixed ratios, no calendar awareness
MS_PER_UNIT: Dict[TimeUnit, int] = {
    TimeUnit.SECONDS: 1000,
    TimeUnit.MINUTES: 1000 * 60,
    TimeUnit.HOURS: 1000 * 60 ** 2,
    TimeUnit.DAYS: 1000 * 60 ** 2 * 24,
    TimeUnit.YEARS: 1000 * 60 ** 2 * 24 * 365,
}


@dataclass(frozen=True)
class TimerRequest:
    """A duration extracted from a recognized intent."""
    duration_value: float
    unit: TimeUnit

    @property
    def delay_ms(self) -> float:
        return self.duration_value * MS_PER_UNIT[self.unit]


@dataclass
class TimerHandle:
    """A scheduled timer."""
    timer_id: int
    request: TimerRequest
    fire_at: datetime
    task: Optional[asyncio.Task] = field(default=None, repr=False)
    fired: bool = False

    @property
    def delay_ms(self) -> float:
        return self.request.delay_ms


class DeferredEventScheduler:
    """
    Arms one-shot alerts.

    Args:
        playback: Shared playback used for the alert
        alert: Interleaved stereo LINEAR16 alert buffer
        alert_channels: Channel count the alert is played with
        sleep: Coroutine used to wait out the delay
    """

    def __init__(self,
                 playback: AudioPlayback,
                 alert: bytes,
                 alert_channels: int = 2,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.playback = playback
        self.alert = alert
        self.alert_channels = alert_channels
        self._sleep = sleep
        self._ids = itertools.count(1)
        self._pending: Dict[int, TimerHandle] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> List[TimerHandle]:
        """Timers armed but not yet fired."""
        return list(self._pending.values())

    def schedule(self, duration_value: float, unit: str) -> Optional[TimerHandle]:
        """
        Arm a timer that plays the alert after the given duration.

        Args:
            duration_value: Amount of ``unit``
            unit: Unit name, e.g. "s", "min", "h", "day", "yr" or "minutes"

        Returns:
            TimerHandle, or None if the unit is not recognized
        """
        time_unit = TimeUnit.parse(unit)
        if time_unit is None:
            logger.warning(f"Ignoring timer with unknown unit '{unit}'")
            return None

        request = TimerRequest(float(duration_value), time_unit)
        handle = TimerHandle(
            timer_id=next(self._ids),
            request=request,
            fire_at=datetime.now() + timedelta(milliseconds=request.delay_ms),
        )
        handle.task = asyncio.create_task(self._fire(handle), name=f"timer-{handle.timer_id}")
        self._pending[handle.timer_id] = handle
        self._tasks.add(handle.task)
        handle.task.add_done_callback(self._tasks.discard)

        logger.info(f"⏲️  Timer {handle.timer_id} set for {duration_value} {time_unit.value} "
                    f"({request.delay_ms:.0f}ms, at {handle.fire_at:%H:%M:%S})")
        return handle

    async def _fire(self, handle: TimerHandle) -> None:
        try:
            await self._sleep(max(handle.delay_ms, 0) / 1000)
        finally:
            self._pending.pop(handle.timer_id, None)

        handle.fired = True
        logger.info(f"⏰ Timer {handle.timer_id} fired")
        try:
            await self.playback.play(self.alert, channels=self.alert_channels,
                                     owner=f"timer-{handle.timer_id}")
        except DeviceError as e:
            logger.error(f"Timer {handle.timer_id} alert could not be played: {e}")
        except Exception as e:
            logger.exception(f"Timer {handle.timer_id} alert failed: {e}")

    async def shutdown(self) -> None:
        """Cancel pending timers and alerts still playing. Only used when the process exits."""
        tasks = [task for task in self._tasks if not task.done()]
        pending = len(self._pending)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if pending:
            logger.info(f"Cancelled {pending} pending timer(s) on shutdown")
