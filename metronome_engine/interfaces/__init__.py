"""
Interfaces package for the metronome engine.
Contains abstract base classes that define contracts for modular components.
"""

from .timing_interfaces import AudioClockInterface, PollTimer, TimerFactory

__all__ = [
    'AudioClockInterface',
    'PollTimer',
    'TimerFactory'
]
