#!/usr/bin/env python3
"""
Offline audio clock: time only advances when told to.

Used for deterministic scheduler tests and for rendering click tracks
to a buffer or WAV file without an audio device.
"""

import threading
from typing import List, Optional
from dataclasses import dataclass
import logging

import numpy as np
from scipy.io import wavfile

from .click_synth import render_click, mix_into
from .errors import AudioUnavailableError
from .interfaces.timing_interfaces import AudioClockInterface

logger = logging.getLogger(__name__)


def write_wav(path: str, buffer: np.ndarray, sample_rate: int) -> int:
    """Write a float buffer in [-1, 1] as 16-bit PCM WAV. Returns frames written."""
    pcm = (np.clip(buffer, -1.0, 1.0) * 32767.0).astype(np.int16)
    wavfile.write(path, sample_rate, pcm)
    return len(pcm)


@dataclass(frozen=True)
class ScheduledTone:
    """A tone recorded by the offline clock"""
    time: float
    accent: bool
    duration_seconds: float
    amplitude: float
    scheduled_at: float  # clock time when schedule_tone() was called


class OfflineAudioClock(AudioClockInterface):
    """Manually advanced audio clock that records every scheduled tone"""

    def __init__(self, sample_rate: int = 44100, start_time: float = 0.0,
                 available: bool = True):
        self.sample_rate = sample_rate
        self._available = available
        self._current_time = float(start_time)
        self._is_open = False
        self._tones: List[ScheduledTone] = []
        self._lock = threading.RLock()

    def open(self) -> None:
        with self._lock:
            if not self._available:
                raise AudioUnavailableError("Offline clock configured as unavailable")
            self._is_open = True
            logger.debug("OfflineAudioClock opened")

    def close(self) -> None:
        with self._lock:
            self._is_open = False

    def is_open(self) -> bool:
        with self._lock:
            return self._is_open

    def now(self) -> float:
        with self._lock:
            return self._current_time

    def advance_time_for_testing(self, seconds: float) -> None:
        """Advance time (never backwards)"""
        if seconds < 0:
            raise ValueError(f"Cannot move the clock backwards: {seconds}")
        with self._lock:
            self._current_time += seconds

    def schedule_tone(self, time: float, accent: bool, duration_seconds: float,
                      amplitude: float) -> None:
        with self._lock:
            self._tones.append(ScheduledTone(
                time=time,
                accent=accent,
                duration_seconds=duration_seconds,
                amplitude=amplitude,
                scheduled_at=self._current_time,
            ))

    @property
    def tones(self) -> List[ScheduledTone]:
        with self._lock:
            return list(self._tones)

    def clear_tones(self) -> None:
        with self._lock:
            self._tones.clear()

    def render(self, duration_seconds: Optional[float] = None) -> np.ndarray:
        """
        Mix all recorded tones into a mono float32 buffer.

        Args:
            duration_seconds: Buffer length; defaults to the end of the last tone

        Returns:
            1-D float32 array clipped to [-1, 1]
        """
        tones = self.tones
        if duration_seconds is None:
            duration_seconds = max((t.time + t.duration_seconds for t in tones), default=0.0)
        buffer = np.zeros(int(round(duration_seconds * self.sample_rate)), dtype=np.float32)
        for tone in tones:
            samples = render_click(tone.accent, tone.duration_seconds, tone.amplitude, self.sample_rate)
            mix_into(buffer, samples, int(round(tone.time * self.sample_rate)))
        np.clip(buffer, -1.0, 1.0, out=buffer)
        return buffer

    def write_wav(self, path: str, duration_seconds: Optional[float] = None) -> int:
        """Render to a 16-bit PCM WAV file. Returns the number of frames written."""
        frames = write_wav(path, self.render(duration_seconds), self.sample_rate)
        logger.info(f"OfflineAudioClock: wrote {frames} frames ({len(self.tones)} clicks) to {path}")
        return frames
