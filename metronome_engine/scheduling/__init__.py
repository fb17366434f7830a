"""
Scheduling package for the metronome engine.
Contains the lookahead beat scheduler and its poll timers.
"""

from .beat_scheduler import BeatScheduler
from .poll_timer import ManualTimerFactory, create_threading_timer

__all__ = [
    'BeatScheduler',
    'ManualTimerFactory',
    'create_threading_timer'
]
