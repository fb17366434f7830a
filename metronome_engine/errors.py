"""
Exception types raised by the metronome engine.
"""


class MetronomeError(Exception):
    """Base class for metronome engine errors"""


class AlreadyRunningError(MetronomeError):
    """start() was called on a scheduler that is already running"""


class AudioUnavailableError(MetronomeError):
    """The audio clock could not be acquired (no device, no PortAudio, or never opened)"""


class InvalidTempoConfigError(MetronomeError, ValueError):
    """A tempo, time signature or volume value is outside the accepted range"""
