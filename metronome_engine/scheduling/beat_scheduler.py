"""
Lookahead beat scheduler for the metronome.

A coarse poll timer wakes the scheduler every poll interval; each wake-up
enqueues, on the precise audio clock, every beat that falls inside the
lookahead window. Timer jitter only changes *when* a beat is enqueued,
never *when* it sounds, so it cannot accumulate into drift.
"""

import functools
import threading
import logging
from typing import Callable, Dict, Any, List, Optional

from ..beat_types import (
    BeatEvent,
    SchedulerState,
    TempoConfig,
    validate_beats_per_measure,
    validate_bpm,
    validate_volume,
)
from ..errors import AlreadyRunningError, AudioUnavailableError
from ..interfaces.timing_interfaces import AudioClockInterface, PollTimer, TimerFactory
from .poll_timer import create_threading_timer

logger = logging.getLogger(__name__)

BeatCallback = Callable[[BeatEvent], None]


class BeatScheduler:
    """
    Drift-free metronome scheduler.

    States are Stopped and Running; the object is reusable indefinitely.
    All shared state is guarded by one RLock because the poll timer fires
    on its own thread while the caller updates tempo from another.
    """

    def __init__(self, audio_clock: AudioClockInterface,
                 tempo_config: Optional[TempoConfig] = None,
                 lookahead_seconds: float = 0.1,
                 poll_interval_ms: float = 25.0,
                 click_duration_seconds: float = 0.05,
                 timer_factory: TimerFactory = create_threading_timer):
        """
        Initialize beat scheduler.

        Args:
            audio_clock: Precise clock that realizes tones at their scheduled time
            tempo_config: Initial settings, replaced by the one passed to start()
            lookahead_seconds: Window ahead of clock.now() in which beats are enqueued
            poll_interval_ms: Delay between scheduling passes, independent of tempo
            click_duration_seconds: Length of each click tone
            timer_factory: Builds one-shot poll timers (threading.Timer signature)
        """
        if lookahead_seconds <= 0:
            raise ValueError(f"lookahead_seconds must be positive: {lookahead_seconds}")
        if poll_interval_ms <= 0:
            raise ValueError(f"poll_interval_ms must be positive: {poll_interval_ms}")
        if poll_interval_ms / 1000.0 >= lookahead_seconds:
            logger.warning(f"Poll interval {poll_interval_ms}ms is not shorter than the "
                           f"{lookahead_seconds}s lookahead window; beats may be enqueued late")

        self._audio_clock = audio_clock
        self._config = tempo_config if tempo_config is not None else TempoConfig()
        self.lookahead_seconds = float(lookahead_seconds)
        self.poll_interval_seconds = poll_interval_ms / 1000.0
        self.click_duration_seconds = float(click_duration_seconds)
        self._timer_factory = timer_factory

        self._lock = threading.RLock()
        self._state = SchedulerState()
        self._last_event_time = 0.0
        self._timer: Optional[PollTimer] = None
        # Bumped on every start/stop so an in-flight poll from an older run is ignored
        self._generation = 0
        self._beat_callbacks: List[BeatCallback] = []

        self._stats = {
            "starts": 0,
            "stops": 0,
            "batches_run": 0,
            "events_scheduled": 0,
            "max_batch_size": 0,
            "late_events": 0,
            "errors": 0,
        }

        logger.debug(f"BeatScheduler initialized: lookahead={self.lookahead_seconds}s, "
                     f"poll={poll_interval_ms}ms")

    # --- Read-only views ---

    @property
    def running(self) -> bool:
        with self._lock:
            return self._state.running

    @property
    def current_beat_in_measure(self) -> int:
        with self._lock:
            return self._state.current_beat_in_measure

    @property
    def tempo_config(self) -> TempoConfig:
        return self._config

    def get_state(self) -> SchedulerState:
        """Get current scheduler state (copy)"""
        with self._lock:
            return SchedulerState(
                running=self._state.running,
                next_event_time=self._state.next_event_time,
                next_beat_index=self._state.next_beat_index,
                current_beat_in_measure=self._state.current_beat_in_measure,
            )

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            stats = self._stats.copy()
            stats["running"] = self._state.running
            stats["next_beat_index"] = self._state.next_beat_index
            return stats

    # --- Lifecycle ---

    def start(self, tempo_config: Optional[TempoConfig] = None) -> None:
        """
        Start scheduling beats from the current audio clock time.

        Args:
            tempo_config: Settings to follow; kept by reference and re-read at
                every scheduling decision. Defaults to the current settings.

        Raises:
            AlreadyRunningError: if already running (nothing changes)
            AudioUnavailableError: if the audio clock is not open (nothing changes)
        """
        with self._lock:
            if self._state.running:
                raise AlreadyRunningError("BeatScheduler is already running")
            if not self._audio_clock.is_open():
                raise AudioUnavailableError("Audio clock is not open")
            if tempo_config is not None:
                if not isinstance(tempo_config, TempoConfig):
                    raise TypeError(f"tempo_config must be a TempoConfig, got {type(tempo_config).__name__}")
                self._config = tempo_config

            start_time = self._audio_clock.now()
            self._state = SchedulerState(
                running=True,
                next_event_time=start_time,
                next_beat_index=0,
                current_beat_in_measure=0,
            )
            self._last_event_time = start_time
            self._generation += 1
            self._stats["starts"] += 1

            logger.info(f"BeatScheduler started at {start_time:.3f}s: "
                        f"{self._config.beats_per_minute:g} BPM, {self._config.beats_per_measure} beats/measure")

            try:
                events = self._schedule_due_events()
                self._arm_timer(self._generation)
            except Exception as e:
                logger.error(f"BeatScheduler: first scheduling pass failed, staying stopped: {e}")
                self._halt()
                self._stats["errors"] += 1
                raise

        self._notify_beat_callbacks(events)

    def stop(self) -> None:
        """
        Stop scheduling. No-op when already stopped.

        Once this returns no new beat is enqueued. Tones already handed to the
        audio clock (at most one lookahead window) are not retracted.
        """
        with self._lock:
            if not self._state.running:
                logger.debug("BeatScheduler not running, stop() ignored")
                return

            beats = self._state.next_beat_index
            self._halt()
            self._stats["stops"] += 1

        logger.info(f"BeatScheduler stopped after {beats} beats")

    def _halt(self) -> None:
        """Move to Stopped. Caller must hold self._lock."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._generation += 1
        self._state = SchedulerState()

    # --- Runtime updates ---

    def update_tempo(self, beats_per_minute: float) -> None:
        """Change tempo; the next beat enqueued is spaced with the new value"""
        beats_per_minute = validate_bpm(beats_per_minute)
        with self._lock:
            old_bpm = self._config.beats_per_minute
            self._config.beats_per_minute = beats_per_minute
            if self._state.running and self._state.next_beat_index > 0:
                self._state.next_event_time = self._last_event_time + self._config.seconds_per_beat
        logger.debug(f"BeatScheduler tempo: {old_bpm:g} -> {beats_per_minute:g} BPM")

    def update_time_signature(self, beats_per_measure: int) -> None:
        """Change beats per measure; accents follow the global beat index"""
        beats_per_measure = validate_beats_per_measure(beats_per_measure)
        with self._lock:
            self._config.beats_per_measure = beats_per_measure
        logger.debug(f"BeatScheduler time signature: {beats_per_measure} beats/measure")

    def update_volume(self, volume: float) -> None:
        volume = validate_volume(volume)
        with self._lock:
            self._config.volume = volume
        logger.debug(f"BeatScheduler volume: {volume:.2f}")

    # --- Beat listeners ---

    def add_beat_callback(self, callback: BeatCallback) -> None:
        """Register a listener called with each BeatEvent as it is enqueued"""
        with self._lock:
            if callback not in self._beat_callbacks:
                self._beat_callbacks.append(callback)

    def remove_beat_callback(self, callback: BeatCallback) -> None:
        with self._lock:
            if callback in self._beat_callbacks:
                self._beat_callbacks.remove(callback)

    # --- Scheduling loop ---

    def _on_poll_timer(self, generation: int) -> None:
        """Poll timer callback - runs on the timer thread"""
        with self._lock:
            if not self._state.running or generation != self._generation:
                return
            self._timer = None
            try:
                events = self._schedule_due_events()
                self._arm_timer(generation)
            except Exception as e:
                # No timer is armed any more; report Stopped so start() works again
                logger.error(f"BeatScheduler: scheduling pass failed, stopping: {e}")
                self._halt()
                self._stats["errors"] += 1
                return

        self._notify_beat_callbacks(events)

    def _arm_timer(self, generation: int) -> None:
        timer = self._timer_factory(self.poll_interval_seconds,
                                    functools.partial(self._on_poll_timer, generation))
        self._timer = timer
        timer.start()

    def _schedule_due_events(self) -> List[BeatEvent]:
        """
        Enqueue every beat that starts before now + lookahead.
        Caller must hold self._lock.
        """
        now = self._audio_clock.now()
        horizon = now + self.lookahead_seconds
        events: List[BeatEvent] = []

        while True:
            # One read of each setting per beat; the caller may write the config concurrently
            config = self._config
            seconds_per_beat = config.seconds_per_beat
            beats_per_measure = config.beats_per_measure
            accent_first_beat = config.accent_first_beat
            volume = config.volume

            beat_index = self._state.next_beat_index
            if beat_index == 0:
                event_time = self._last_event_time
            else:
                # Spacing uses the tempo in effect now, when this beat is scheduled
                event_time = self._last_event_time + seconds_per_beat
            self._state.next_event_time = event_time
            if event_time >= horizon:
                break

            beat_in_measure = beat_index % beats_per_measure
            event = BeatEvent(
                time=event_time,
                beat_index=beat_index,
                is_accent=accent_first_beat and beat_in_measure == 0,
                beat_in_measure=beat_in_measure,
                amplitude=volume,
            )
            if event_time < now:
                self._stats["late_events"] += 1
                logger.warning(f"BeatScheduler: beat {beat_index} enqueued {now - event_time:.3f}s late")

            self._audio_clock.schedule_tone(event.time, event.is_accent,
                                            self.click_duration_seconds, event.amplitude)

            self._last_event_time = event_time
            self._state.next_beat_index = beat_index + 1
            self._state.next_event_time = event_time + seconds_per_beat
            self._state.current_beat_in_measure = event.beat_in_measure
            events.append(event)

        self._stats["batches_run"] += 1
        self._stats["events_scheduled"] += len(events)
        if len(events) > self._stats["max_batch_size"]:
            self._stats["max_batch_size"] = len(events)
        return events

    def _notify_beat_callbacks(self, events: List[BeatEvent]) -> None:
        if not events:
            return
        with self._lock:
            callbacks = list(self._beat_callbacks)
        for event in events:
            for callback in callbacks:
                try:
                    callback(event)
                except Exception as e:
                    logger.error(f"Error in beat callback: {e}")
