#!/usr/bin/env python3
"""
Core data types for the metronome beat scheduler.
Tempo configuration (caller-owned), scheduler state (scheduler-owned)
and the transient beat events handed to the audio clock.
"""

from dataclasses import dataclass
import numbers

from .errors import InvalidTempoConfigError

MIN_BPM = 40.0
MAX_BPM = 240.0
MIN_BEATS_PER_MEASURE = 1
MAX_BEATS_PER_MEASURE = 16

ACCENT_FREQUENCY_HZ = 1000.0
BEAT_FREQUENCY_HZ = 800.0


def validate_bpm(beats_per_minute) -> float:
    """Return beats_per_minute as float, or raise if it is outside [MIN_BPM, MAX_BPM]"""
    if isinstance(beats_per_minute, bool) or not isinstance(beats_per_minute, numbers.Real):
        raise InvalidTempoConfigError(f"beats_per_minute must be a number, got {beats_per_minute!r}")
    if not (MIN_BPM <= beats_per_minute <= MAX_BPM):
        raise InvalidTempoConfigError(
            f"beats_per_minute must be within [{MIN_BPM:g}, {MAX_BPM:g}], got {beats_per_minute}"
        )
    return float(beats_per_minute)


def validate_beats_per_measure(beats_per_measure) -> int:
    if isinstance(beats_per_measure, bool) or not isinstance(beats_per_measure, numbers.Integral):
        raise InvalidTempoConfigError(f"beats_per_measure must be an integer, got {beats_per_measure!r}")
    if not (MIN_BEATS_PER_MEASURE <= beats_per_measure <= MAX_BEATS_PER_MEASURE):
        raise InvalidTempoConfigError(
            f"beats_per_measure must be within [{MIN_BEATS_PER_MEASURE}, {MAX_BEATS_PER_MEASURE}], "
            f"got {beats_per_measure}"
        )
    return int(beats_per_measure)


def validate_volume(volume) -> float:
    if isinstance(volume, bool) or not isinstance(volume, numbers.Real):
        raise InvalidTempoConfigError(f"volume must be a number, got {volume!r}")
    if not (0.0 <= volume <= 1.0):
        raise InvalidTempoConfigError(f"volume must be within [0, 1], got {volume}")
    return float(volume)


def validate_accent_first_beat(accent_first_beat) -> bool:
    if not isinstance(accent_first_beat, bool):
        raise InvalidTempoConfigError(f"accent_first_beat must be a bool, got {accent_first_beat!r}")
    return accent_first_beat


_FIELD_VALIDATORS = {
    "beats_per_minute": validate_bpm,
    "beats_per_measure": validate_beats_per_measure,
    "accent_first_beat": validate_accent_first_beat,
    "volume": validate_volume,
}


@dataclass
class TempoConfig:
    """
    Metronome settings owned by the caller.

    The scheduler keeps a reference to this object and reads it at every
    scheduling decision, so mutations while running take effect on the next
    event that gets scheduled. Every assignment is validated, including the
    ones made by __init__, so an invalid value never reaches the scheduler.
    """
    beats_per_minute: float = 120.0
    beats_per_measure: int = 4
    accent_first_beat: bool = True
    volume: float = 0.8

    def __setattr__(self, name, value):
        validator = _FIELD_VALIDATORS.get(name)
        if validator is not None:
            value = validator(value)
        super().__setattr__(name, value)

    @property
    def seconds_per_beat(self) -> float:
        return 60.0 / self.beats_per_minute

    def is_accent(self, beat_index: int) -> bool:
        """First beat of each measure, counted on the global beat index"""
        return self.accent_first_beat and beat_index % self.beats_per_measure == 0


@dataclass
class SchedulerState:
    """Current state of the beat scheduler"""
    running: bool = False
    next_event_time: float = 0.0      # audio clock seconds
    next_beat_index: int = 0          # events scheduled since start
    current_beat_in_measure: int = 0  # UI feedback only, not audio-accurate


@dataclass(frozen=True)
class BeatEvent:
    """A click handed to the audio clock"""
    time: float
    beat_index: int
    is_accent: bool
    beat_in_measure: int
    amplitude: float

    @property
    def frequency_hz(self) -> float:
        return ACCENT_FREQUENCY_HZ if self.is_accent else BEAT_FREQUENCY_HZ
