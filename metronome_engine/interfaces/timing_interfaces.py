"""
Timing-related interfaces for the metronome engine.
Defines contracts for the precise audio clock and the coarse poll timer.
"""

from abc import ABC, abstractmethod
from typing import Callable, Protocol


class AudioClockInterface(ABC):
    """
    Interface for a precise audio output clock.

    The scheduler decides *what* to play on a coarse timer and delegates
    *when* to this clock, so timer jitter never turns into audible drift.
    Implementations are acquired with open() and released with close().
    """

    @abstractmethod
    def now(self) -> float:
        """
        Get current audio clock time.

        Returns:
            Monotonically increasing time in seconds
        """
        pass

    @abstractmethod
    def schedule_tone(self, time: float, accent: bool, duration_seconds: float,
                      amplitude: float) -> None:
        """
        Enqueue a short click to start exactly at `time`.

        Must return immediately and never block.

        Args:
            time: Audio clock time at which the tone starts
            accent: True for the accented (higher) click
            duration_seconds: Tone length
            amplitude: Peak amplitude in [0, 1]
        """
        pass

    @abstractmethod
    def open(self) -> None:
        """
        Acquire the underlying audio resource.

        Raises:
            AudioUnavailableError: if no audio output can be acquired
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the underlying audio resource. Safe to call twice."""
        pass

    @abstractmethod
    def is_open(self) -> bool:
        """Check if the audio resource is acquired"""
        pass

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class PollTimer(Protocol):
    """One-shot timer handle, shaped like threading.Timer"""

    def start(self) -> None:
        ...

    def cancel(self) -> None:
        ...


# (interval_seconds, function) -> unstarted PollTimer
TimerFactory = Callable[[float, Callable[[], None]], PollTimer]
