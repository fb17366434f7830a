import sys, pathlib

import pytest

# Ensure repository root is on path
sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[1]))

from metronome_engine.offline_clock import OfflineAudioClock
from metronome_engine.scheduling.beat_scheduler import BeatScheduler
from metronome_engine.scheduling.poll_timer import ManualTimerFactory

POLL_SECONDS = 0.025


class RecordingTimerFactory(ManualTimerFactory):
    """ManualTimerFactory that keeps every timer it hands out"""

    def __init__(self):
        super().__init__()
        self.created = []

    def __call__(self, interval_seconds, function):
        timer = super().__call__(interval_seconds, function)
        self.created.append(timer)
        return timer


class OfflineRig:
    """Offline clock + manual timers + scheduler, advanced one poll at a time"""

    def __init__(self, lookahead_seconds=0.1, poll_interval_ms=25.0):
        self.clock = OfflineAudioClock()
        self.clock.open()
        self.timers = RecordingTimerFactory()
        self.scheduler = BeatScheduler(
            self.clock,
            lookahead_seconds=lookahead_seconds,
            poll_interval_ms=poll_interval_ms,
            timer_factory=self.timers,
        )
        self.poll_seconds = poll_interval_ms / 1000.0

    def step(self):
        self.clock.advance_time_for_testing(self.poll_seconds)
        self.timers.fire_pending()

    def run_for(self, seconds):
        for _ in range(int(round(seconds / self.poll_seconds))):
            self.step()

    def run_until(self, predicate, max_seconds=60.0):
        for _ in range(int(round(max_seconds / self.poll_seconds))):
            if predicate():
                return
            self.step()
        raise AssertionError("condition not reached")

    @property
    def tones(self):
        return self.clock.tones


@pytest.fixture
def rig():
    return OfflineRig()


@pytest.fixture
def app_config():
    import config
    return config
