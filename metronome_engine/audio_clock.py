#!/usr/bin/env python3
"""
Real-time audio clock backed by a sounddevice output stream.

The clock time is derived from the number of frames the stream callback has
rendered, so it advances at exactly the device sample rate. Tones are handed
over through a queue and mixed into the block that contains their start frame,
which makes their onset sample-accurate regardless of when they were enqueued.
"""

import threading
import queue
from typing import Any, Callable, List, Optional
from dataclasses import dataclass
import logging

import numpy as np

from .click_synth import render_click, mix_into
from .errors import AudioUnavailableError
from .interfaces.timing_interfaces import AudioClockInterface

logger = logging.getLogger(__name__)


def _default_stream_factory(**stream_kwargs) -> Any:
    # Imported here: sounddevice raises OSError at import time when PortAudio is missing
    import sounddevice as sd
    return sd.OutputStream(**stream_kwargs)


@dataclass
class ClockState:
    """Current state of the audio clock"""
    is_open: bool = False
    current_time: float = 0.0
    total_frames: int = 0
    sample_rate: int = 44100
    active_voices: int = 0


@dataclass
class _Voice:
    start_frame: int
    samples: np.ndarray

    @property
    def end_frame(self) -> int:
        return self.start_frame + len(self.samples)


class SoundDeviceAudioClock(AudioClockInterface):
    """
    High-precision audio clock synchronized with the audio device.
    The stream callback never blocks and never takes a lock.
    """

    def __init__(self, sample_rate: int = 44100, blocksize: int = 256,
                 device: Optional[Any] = None,
                 stream_factory: Callable[..., Any] = _default_stream_factory):
        self.sample_rate = sample_rate
        self.blocksize = blocksize
        self.device = device
        self._stream_factory = stream_factory
        self._stream = None
        self._lock = threading.RLock()  # open/close only, never held in audio callback

        # Scheduler thread -> audio callback
        self._tone_queue: "queue.Queue[_Voice]" = queue.Queue(maxsize=1024)

        # Audio callback state (only accessed by audio callback)
        self._total_frames = 0
        self._voices: List[_Voice] = []

        self._stats = {
            "tones_scheduled": 0,
            "tones_dropped": 0,
            "late_tones": 0,
            "callback_status_flags": 0,
        }

        logger.debug(f"SoundDeviceAudioClock initialized: sample_rate={sample_rate}, blocksize={blocksize}")

    def open(self) -> None:
        """Open and start the output stream"""
        with self._lock:
            if self._stream is not None:
                logger.warning("SoundDeviceAudioClock already open")
                return

            # Tones from a previous session carry frame positions of the old timeline
            self._discard_pending_tones()
            self._total_frames = 0
            self._voices = []
            stream = None
            try:
                stream = self._stream_factory(
                    samplerate=self.sample_rate,
                    channels=1,
                    dtype="float32",
                    blocksize=self.blocksize,
                    callback=self._audio_callback,
                    device=self.device,
                )
                stream.start()
            except Exception as e:
                if stream is not None:
                    stream.close(ignore_errors=True)
                logger.error(f"SoundDeviceAudioClock: could not open audio output: {e}")
                raise AudioUnavailableError(f"Audio output unavailable: {e}") from e

            self._stream = stream
            logger.info(f"SoundDeviceAudioClock opened at {self.sample_rate} Hz")

    def close(self) -> None:
        """Stop and release the output stream"""
        with self._lock:
            if self._stream is None:
                return
            stream = self._stream
            self._stream = None
            try:
                stream.stop(ignore_errors=True)
            finally:
                stream.close(ignore_errors=True)
                # Callback no longer runs, safe to touch its state
                discarded = self._discard_pending_tones()
                self._voices = []
            logger.info(f"SoundDeviceAudioClock closed ({discarded} pending tones discarded)")

    def _discard_pending_tones(self) -> int:
        discarded = 0
        while True:
            try:
                self._tone_queue.get_nowait()
            except queue.Empty:
                return discarded
            discarded += 1

    def is_open(self) -> bool:
        with self._lock:
            return self._stream is not None

    def now(self) -> float:
        """Seconds of audio rendered since open()"""
        return self._total_frames / self.sample_rate

    def schedule_tone(self, time: float, accent: bool, duration_seconds: float,
                      amplitude: float) -> None:
        """Render the click and hand it to the audio callback (non-blocking)"""
        samples = render_click(accent, duration_seconds, amplitude, self.sample_rate)
        voice = _Voice(start_frame=int(round(time * self.sample_rate)), samples=samples)
        try:
            self._tone_queue.put_nowait(voice)
            self._stats["tones_scheduled"] += 1
        except queue.Full:
            self._stats["tones_dropped"] += 1
            logger.warning(f"SoundDeviceAudioClock - Tone queue full, dropping tone at {time:.3f}s")

    def _audio_callback(self, outdata: np.ndarray, frames: int, time_info, status) -> None:
        """Audio callback - NEVER BLOCKS"""
        if status:
            self._stats["callback_status_flags"] += 1

        block_start = self._total_frames
        self._drain_tone_queue(block_start)

        block = np.zeros(frames, dtype=np.float32)
        still_playing = []
        for voice in self._voices:
            mix_into(block, voice.samples, voice.start_frame - block_start)
            if voice.end_frame > block_start + frames:
                still_playing.append(voice)
        self._voices = still_playing

        np.clip(block, -1.0, 1.0, out=block)
        outdata[:, 0] = block
        if outdata.shape[1] > 1:
            outdata[:, 1:] = block[:, None]

        # Single int assignment, read by now() from other threads
        self._total_frames = block_start + frames

    def _drain_tone_queue(self, block_start: int) -> None:
        while True:
            try:
                voice = self._tone_queue.get_nowait()
            except queue.Empty:
                break
            if voice.start_frame < block_start:
                # Onset already passed: the elapsed part is trimmed by mix_into
                self._stats["late_tones"] += 1
            self._voices.append(voice)

    def get_stats(self):
        return dict(self._stats)

    def get_state(self) -> ClockState:
        """Get current clock state (copy)"""
        total_frames = self._total_frames
        return ClockState(
            is_open=self.is_open(),
            current_time=total_frames / self.sample_rate,
            total_frames=total_frames,
            sample_rate=self.sample_rate,
            active_voices=len(self._voices),
        )
