#!/usr/bin/env python3
"""
Metronome session: owns the audio clock for its whole lifetime and drives
a BeatScheduler on it. Use as a context manager so the audio device is
released even when the session is torn down while running.
"""

import logging
from typing import List, Optional, Tuple

import numpy as np

from .audio_clock import SoundDeviceAudioClock
from .beat_types import BeatEvent, TempoConfig
from .interfaces.timing_interfaces import AudioClockInterface, TimerFactory
from .offline_clock import OfflineAudioClock
from .scheduling.beat_scheduler import BeatScheduler
from .scheduling.poll_timer import ManualTimerFactory, create_threading_timer

logger = logging.getLogger(__name__)


def default_tempo_config(app_config_module) -> TempoConfig:
    return TempoConfig(
        beats_per_minute=app_config_module.DEFAULT_BPM,
        beats_per_measure=app_config_module.DEFAULT_BEATS_PER_MEASURE,
        accent_first_beat=True,
        volume=app_config_module.DEFAULT_VOLUME,
    )


class Metronome:
    def __init__(self, app_config_module, audio_clock: Optional[AudioClockInterface] = None,
                 timer_factory: Optional[TimerFactory] = None,
                 tempo_config: Optional[TempoConfig] = None):
        logger.debug("Metronome - Initializing...")
        self.app_config = app_config_module
        if self.app_config is None:
            raise ValueError("Metronome requires a valid config module.")

        if audio_clock is None:
            audio_clock = SoundDeviceAudioClock(
                sample_rate=self.app_config.SAMPLE_RATE,
                blocksize=self.app_config.OUTPUT_BLOCKSIZE,
            )
        self.audio_clock = audio_clock

        self.scheduler = BeatScheduler(
            self.audio_clock,
            tempo_config=tempo_config or default_tempo_config(self.app_config),
            lookahead_seconds=self.app_config.LOOKAHEAD_SECONDS,
            poll_interval_ms=self.app_config.POLL_INTERVAL_MS,
            click_duration_seconds=self.app_config.CLICK_DURATION_SECONDS,
            timer_factory=timer_factory or create_threading_timer,
        )

    # --- Audio clock ownership ---

    def open(self) -> None:
        """Acquire the audio clock (raises AudioUnavailableError)"""
        if not self.audio_clock.is_open():
            self.audio_clock.open()

    def close(self) -> None:
        """Stop playback and release the audio clock"""
        try:
            self.scheduler.stop()
        finally:
            self.audio_clock.close()
        logger.debug("Metronome closed")

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # --- Playback control ---

    def start(self, tempo_config: Optional[TempoConfig] = None) -> None:
        if not self.scheduler.running:
            self.open()
        self.scheduler.start(tempo_config)

    def stop(self) -> None:
        self.scheduler.stop()

    def toggle(self) -> bool:
        """Start if stopped, stop if running. Returns the new running state."""
        if self.scheduler.running:
            self.stop()
        else:
            self.start()
        return self.scheduler.running

    def update_tempo(self, beats_per_minute: float) -> None:
        self.scheduler.update_tempo(beats_per_minute)

    def update_time_signature(self, beats_per_measure: int) -> None:
        self.scheduler.update_time_signature(beats_per_measure)

    def update_volume(self, volume: float) -> None:
        self.scheduler.update_volume(volume)

    @property
    def tempo_config(self) -> TempoConfig:
        return self.scheduler.tempo_config

    @property
    def running(self) -> bool:
        return self.scheduler.running

    @property
    def current_beat_in_measure(self) -> int:
        return self.scheduler.current_beat_in_measure


def render_click_track(tempo_config: TempoConfig, duration_seconds: float,
                       app_config_module) -> Tuple[np.ndarray, List[BeatEvent]]:
    """
    Render a click track offline by driving the real scheduler on a manual clock.

    Args:
        tempo_config: Settings to render with
        duration_seconds: Length of the output buffer
        app_config_module: Config module (sample rate, lookahead, poll interval)

    Returns:
        (mono float32 buffer, beat events that start before duration_seconds)
    """
    if duration_seconds <= 0:
        raise ValueError(f"duration_seconds must be positive: {duration_seconds}")

    clock = OfflineAudioClock(sample_rate=app_config_module.SAMPLE_RATE)
    timers = ManualTimerFactory()
    events: List[BeatEvent] = []

    metronome = Metronome(app_config_module, audio_clock=clock, timer_factory=timers,
                          tempo_config=tempo_config)
    metronome.scheduler.add_beat_callback(events.append)
    poll_seconds = metronome.scheduler.poll_interval_seconds

    with metronome:
        metronome.start()
        while clock.now() < duration_seconds:
            clock.advance_time_for_testing(poll_seconds)
            timers.fire_pending()
        metronome.stop()
        buffer = clock.render(duration_seconds)

    events = [e for e in events if e.time < duration_seconds]
    logger.info(f"Rendered {len(events)} clicks over {duration_seconds:g}s "
                f"at {tempo_config.beats_per_minute:g} BPM")
    return buffer, events
