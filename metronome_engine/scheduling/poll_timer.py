"""
One-shot poll timers for the scheduling loop.
threading.Timer for live playback, a manually fired factory for offline driving.
"""

import threading
import logging
from typing import Callable, List

logger = logging.getLogger(__name__)


def create_threading_timer(interval_seconds: float, function: Callable[[], None]) -> threading.Timer:
    """Unstarted daemon threading.Timer"""
    timer = threading.Timer(interval_seconds, function)
    timer.daemon = True
    timer.name = "BeatScheduler-Poll"
    return timer


class ManualTimer:
    """Timer handle produced by ManualTimerFactory"""

    def __init__(self, factory: "ManualTimerFactory", interval_seconds: float,
                 function: Callable[[], None]):
        self.interval_seconds = interval_seconds
        self.function = function
        self.started = False
        self.cancelled = False
        self._factory = factory

    def start(self) -> None:
        if self.started:
            raise RuntimeError("timers can only be started once")
        self.started = True
        self._factory._pending.append(self)

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimerFactory:
    """
    TimerFactory whose timers fire only when fire_pending() is called.

    Timers armed by a firing callback wait for the next fire_pending() call,
    like a real one-shot re-arm.
    """

    def __init__(self):
        self._pending: List[ManualTimer] = []
        self.timers_created = 0

    def __call__(self, interval_seconds: float, function: Callable[[], None]) -> ManualTimer:
        self.timers_created += 1
        return ManualTimer(self, interval_seconds, function)

    @property
    def pending_count(self) -> int:
        return sum(1 for t in self._pending if not t.cancelled)

    def fire_pending(self) -> int:
        """Fire every started, non-cancelled timer once. Returns how many fired."""
        due, self._pending = self._pending, []
        fired = 0
        for timer in due:
            if timer.cancelled:
                continue
            timer.function()
            fired += 1
        return fired
