# pronia-metronome/metronome_engine/__init__.py

from .beat_types import TempoConfig, BeatEvent, SchedulerState
from .errors import MetronomeError, AlreadyRunningError, AudioUnavailableError, InvalidTempoConfigError
from .audio_clock import SoundDeviceAudioClock
from .offline_clock import OfflineAudioClock
from .scheduling import BeatScheduler, ManualTimerFactory
from .metronome import Metronome, render_click_track

__all__ = [
    'TempoConfig', 'BeatEvent', 'SchedulerState',
    'MetronomeError', 'AlreadyRunningError', 'AudioUnavailableError', 'InvalidTempoConfigError',
    'SoundDeviceAudioClock', 'OfflineAudioClock',
    'BeatScheduler', 'ManualTimerFactory',
    'Metronome', 'render_click_track'
]
