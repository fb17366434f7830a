import pytest

from metronome_engine.beat_types import TempoConfig
from metronome_engine.errors import AlreadyRunningError, AudioUnavailableError, InvalidTempoConfigError
from metronome_engine.offline_clock import OfflineAudioClock
from metronome_engine.scheduling.beat_scheduler import BeatScheduler
from metronome_engine.scheduling.poll_timer import ManualTimerFactory


def test_initial_state_is_stopped(rig):
    state = rig.scheduler.get_state()
    assert not rig.scheduler.running
    assert state.next_beat_index == 0
    assert state.current_beat_in_measure == 0


def test_start_enqueues_first_beat_at_clock_time(rig):
    rig.clock.advance_time_for_testing(3.0)
    rig.scheduler.start(TempoConfig(beats_per_minute=120, beats_per_measure=4))

    assert rig.scheduler.running
    assert len(rig.tones) == 1
    assert rig.tones[0].time == pytest.approx(3.0)
    assert rig.tones[0].accent
    assert rig.timers.pending_count == 1


def test_two_seconds_at_120_bpm_in_four(rig):
    rig.scheduler.start(TempoConfig(beats_per_minute=120, beats_per_measure=4))
    rig.run_for(2.0)

    before_two = [t for t in rig.tones if t.time < 2.0 - 1e-9]
    assert [t.time for t in before_two] == pytest.approx([0.0, 0.5, 1.0, 1.5])
    assert [t.accent for t in before_two] == [True, False, False, False]

    # The beat at t=2.0 falls inside the lookahead window and opens the next measure
    assert rig.tones[4].time == pytest.approx(2.0)
    assert rig.tones[4].accent


@pytest.mark.parametrize("bpm", [40, 60, 97.5, 120, 180, 240])
@pytest.mark.parametrize("beats_per_measure", [2, 3, 4, 6])
def test_event_count_tracks_elapsed_time(rig, bpm, beats_per_measure):
    duration = 10.0
    rig.scheduler.start(TempoConfig(beats_per_minute=bpm, beats_per_measure=beats_per_measure))
    rig.run_for(duration)

    expected = duration * bpm / 60.0
    assert abs(len(rig.tones) - expected) <= 1.0


def test_constant_tempo_spacing_is_uniform(rig):
    rig.scheduler.start(TempoConfig(beats_per_minute=137))
    rig.run_for(5.0)

    times = [t.time for t in rig.tones]
    gaps = [b - a for a, b in zip(times, times[1:])]
    assert gaps
    assert gaps == pytest.approx([60.0 / 137] * len(gaps))


def test_accent_on_first_beat_of_each_measure(rig):
    rig.scheduler.start(TempoConfig(beats_per_minute=200, beats_per_measure=3))
    rig.run_for(6.0)

    for index, tone in enumerate(rig.tones):
        assert tone.accent == (index % 3 == 0)


def test_no_accents_when_disabled(rig):
    rig.scheduler.start(TempoConfig(beats_per_minute=180, accent_first_beat=False))
    rig.run_for(3.0)

    assert rig.tones
    assert not any(t.accent for t in rig.tones)


def test_tempo_change_applies_to_next_beat(rig):
    rig.scheduler.start(TempoConfig(beats_per_minute=60))
    rig.run_until(lambda: len(rig.tones) >= 3)
    assert len(rig.tones) == 3

    rig.scheduler.update_tempo(120)
    rig.run_until(lambda: len(rig.tones) >= 5)

    times = [t.time for t in rig.tones]
    assert times[1] - times[0] == pytest.approx(1.0)
    assert times[2] - times[1] == pytest.approx(1.0)
    assert times[3] - times[2] == pytest.approx(0.5)
    assert times[4] - times[3] == pytest.approx(0.5)


def test_tempo_change_never_moves_enqueued_beats(rig):
    rig.scheduler.start(TempoConfig(beats_per_minute=90))
    rig.run_for(2.0)
    before = [t.time for t in rig.tones]

    rig.scheduler.update_tempo(200)
    rig.run_for(1.0)

    assert [t.time for t in rig.tones[:len(before)]] == before


def test_time_signature_change_accents_next_multiple(rig):
    rig.scheduler.start(TempoConfig(beats_per_minute=120, beats_per_measure=4))
    rig.run_until(lambda: rig.scheduler.get_state().next_beat_index >= 5)
    assert rig.scheduler.get_state().next_beat_index == 5

    rig.scheduler.update_time_signature(3)
    rig.run_until(lambda: len(rig.tones) >= 10)

    accented_after = [i for i, t in enumerate(rig.tones) if i >= 5 and t.accent]
    assert accented_after[0] == 6
    assert accented_after == [i for i in range(5, len(rig.tones)) if i % 3 == 0]


def test_volume_change_applies_to_later_beats(rig):
    rig.scheduler.start(TempoConfig(beats_per_minute=120, volume=0.8))
    rig.run_for(1.0)
    enqueued = len(rig.tones)

    rig.scheduler.update_volume(0.25)
    rig.run_for(1.0)

    assert all(t.amplitude == pytest.approx(0.8) for t in rig.tones[:enqueued])
    assert all(t.amplitude == pytest.approx(0.25) for t in rig.tones[enqueued:])


def test_direct_mutation_of_caller_config_is_picked_up(rig):
    tempo_config = TempoConfig(beats_per_minute=60)
    rig.scheduler.start(tempo_config)
    rig.run_until(lambda: len(rig.tones) >= 2)

    tempo_config.beats_per_minute = 240
    rig.run_until(lambda: len(rig.tones) >= 3)

    assert rig.tones[2].time - rig.tones[1].time == pytest.approx(0.25)


def test_updates_allowed_while_stopped(rig):
    rig.scheduler.update_tempo(90)
    rig.scheduler.update_time_signature(6)
    rig.scheduler.update_volume(0.5)

    assert rig.scheduler.tempo_config.beats_per_minute == 90
    assert rig.scheduler.tempo_config.beats_per_measure == 6
    assert rig.scheduler.tempo_config.volume == 0.5
    assert not rig.tones


def test_invalid_update_is_rejected_and_config_unchanged(rig):
    rig.scheduler.start(TempoConfig(beats_per_minute=100))

    with pytest.raises(InvalidTempoConfigError):
        rig.scheduler.update_tempo(300)
    with pytest.raises(InvalidTempoConfigError):
        rig.scheduler.update_time_signature(0)
    with pytest.raises(InvalidTempoConfigError):
        rig.scheduler.update_volume(1.5)

    cfg = rig.scheduler.tempo_config
    assert (cfg.beats_per_minute, cfg.beats_per_measure, cfg.volume) == (100, 4, 0.8)


def test_stop_is_idempotent(rig):
    rig.scheduler.stop()
    assert not rig.scheduler.running

    rig.scheduler.start(TempoConfig())
    rig.scheduler.stop()
    rig.scheduler.stop()
    assert not rig.scheduler.running
    assert rig.scheduler.get_stats()["stops"] == 1


def test_double_start_fails_without_new_events(rig):
    rig.scheduler.start(TempoConfig(beats_per_minute=120))
    rig.run_for(0.5)
    enqueued = len(rig.tones)
    timers_before = rig.timers.timers_created

    with pytest.raises(AlreadyRunningError):
        rig.scheduler.start(TempoConfig(beats_per_minute=60))

    assert len(rig.tones) == enqueued
    assert rig.timers.timers_created == timers_before
    assert rig.scheduler.running
    assert rig.scheduler.tempo_config.beats_per_minute == 120


def test_no_new_events_after_stop(rig):
    rig.scheduler.start(TempoConfig(beats_per_minute=120))
    rig.run_for(1.0)
    rig.scheduler.stop()
    enqueued = len(rig.tones)

    assert rig.timers.pending_count == 0
    rig.run_for(2.0)
    assert len(rig.tones) == enqueued


def test_in_flight_poll_after_stop_is_ignored(rig):
    rig.scheduler.start(TempoConfig(beats_per_minute=120))
    rig.run_for(0.5)
    in_flight = rig.timers.created[-1]
    rig.scheduler.stop()
    enqueued = len(rig.tones)

    # Timer thread already past cancel() when stop() ran
    rig.clock.advance_time_for_testing(1.0)
    in_flight.function()
    assert len(rig.tones) == enqueued

    # An old poll must not drive a later run either
    rig.scheduler.start()
    restarted = len(rig.tones)
    rig.clock.advance_time_for_testing(1.0)
    in_flight.function()
    assert len(rig.tones) == restarted


def test_stop_resets_beat_position(rig):
    rig.scheduler.start(TempoConfig(beats_per_minute=120, beats_per_measure=4))
    rig.run_until(lambda: rig.scheduler.current_beat_in_measure == 2)

    rig.scheduler.stop()
    state = rig.scheduler.get_state()
    assert state.current_beat_in_measure == 0
    assert not state.running


def test_restart_begins_a_new_measure_at_clock_time(rig):
    rig.scheduler.start(TempoConfig(beats_per_minute=120, beats_per_measure=4))
    rig.run_for(1.3)
    rig.scheduler.stop()
    rig.clock.advance_time_for_testing(5.0)
    rig.clock.clear_tones()

    rig.scheduler.start()
    first = rig.tones[0]
    assert first.time == pytest.approx(rig.clock.now())
    assert first.accent
    assert rig.scheduler.get_state().next_beat_index == 1


def test_next_beat_index_counts_scheduled_events(rig):
    rig.scheduler.start(TempoConfig(beats_per_minute=173))
    rig.run_for(4.0)
    assert rig.scheduler.get_state().next_beat_index == len(rig.tones)


def test_current_beat_tracks_last_enqueued_beat(rig):
    rig.scheduler.start(TempoConfig(beats_per_minute=120, beats_per_measure=3))
    for _ in range(40):
        rig.step()
        last_index = len(rig.tones) - 1
        assert rig.scheduler.current_beat_in_measure == last_index % 3


def test_start_without_open_clock_raises_and_changes_nothing():
    clock = OfflineAudioClock()
    timers = ManualTimerFactory()
    scheduler = BeatScheduler(clock, timer_factory=timers)
    original = scheduler.tempo_config

    with pytest.raises(AudioUnavailableError):
        scheduler.start(TempoConfig(beats_per_minute=60))

    assert not scheduler.running
    assert scheduler.tempo_config is original
    assert clock.tones == []
    assert timers.timers_created == 0


def test_start_rejects_non_config(rig):
    with pytest.raises(TypeError):
        rig.scheduler.start({"beats_per_minute": 120})
    assert not rig.scheduler.running


def test_beat_callbacks_receive_events_in_order(rig):
    received = []
    rig.scheduler.add_beat_callback(received.append)
    rig.scheduler.start(TempoConfig(beats_per_minute=150, beats_per_measure=2))
    rig.run_for(3.0)

    assert [e.beat_index for e in received] == list(range(len(rig.tones)))
    assert [e.time for e in received] == [t.time for t in rig.tones]
    assert all(e.is_accent == (e.beat_index % 2 == 0) for e in received)

    rig.scheduler.remove_beat_callback(received.append)
    count = len(received)
    rig.run_for(1.0)
    assert len(received) == count


def test_failing_beat_callback_is_logged_and_scheduling_continues(rig, caplog):
    def broken(event):
        raise RuntimeError("display gone")

    rig.scheduler.add_beat_callback(broken)
    rig.scheduler.start(TempoConfig(beats_per_minute=120))
    rig.run_for(1.0)

    assert len(rig.tones) >= 2
    assert "Error in beat callback" in caplog.text


def test_late_poll_is_counted_but_spacing_holds(rig):
    rig.scheduler.start(TempoConfig(beats_per_minute=120))
    # Poll timer stalls for far longer than the lookahead window
    rig.clock.advance_time_for_testing(1.2)
    rig.timers.fire_pending()

    stats = rig.scheduler.get_stats()
    assert stats["late_events"] >= 2
    times = [t.time for t in rig.tones]
    assert [b - a for a, b in zip(times, times[1:])] == pytest.approx([0.5] * (len(times) - 1))


def test_stats_track_batches(rig):
    rig.scheduler.start(TempoConfig(beats_per_minute=120))
    rig.run_for(1.0)
    stats = rig.scheduler.get_stats()

    assert stats["starts"] == 1
    assert stats["batches_run"] == 1 + 40
    assert stats["events_scheduled"] == len(rig.tones)
    assert stats["max_batch_size"] == 1


def test_constructor_validates_timing():
    clock = OfflineAudioClock()
    with pytest.raises(ValueError):
        BeatScheduler(clock, lookahead_seconds=0)
    with pytest.raises(ValueError):
        BeatScheduler(clock, poll_interval_ms=-5)


class FlakyClock(OfflineAudioClock):
    """Offline clock whose tone hand-off can be made to fail"""

    def __init__(self):
        super().__init__()
        self.fail = False

    def schedule_tone(self, time, accent, duration_seconds, amplitude):
        if self.fail:
            raise RuntimeError("device lost")
        super().schedule_tone(time, accent, duration_seconds, amplitude)


class WobblingSignature(TempoConfig):
    """Config whose beats per measure changes between any two reads"""

    @property
    def beats_per_measure(self):
        self._reads = getattr(self, "_reads", 0) + 1
        return 3 if self._reads % 2 else 4

    @beats_per_measure.setter
    def beats_per_measure(self, value):
        pass


def test_failed_poll_moves_scheduler_to_stopped(caplog):
    clock = FlakyClock()
    clock.open()
    timers = ManualTimerFactory()
    scheduler = BeatScheduler(clock, timer_factory=timers)
    scheduler.start(TempoConfig(beats_per_minute=120))

    clock.fail = True
    for _ in range(40):
        clock.advance_time_for_testing(0.025)
        timers.fire_pending()

    assert not scheduler.running
    assert timers.pending_count == 0
    assert scheduler.get_stats()["errors"] == 1
    assert "scheduling pass failed" in caplog.text

    clock.fail = False
    enqueued = len(clock.tones)
    scheduler.start()
    for _ in range(40):
        clock.advance_time_for_testing(0.025)
        timers.fire_pending()
    assert scheduler.running
    assert len(clock.tones) - enqueued == 3


def test_failed_first_pass_leaves_scheduler_stopped():
    clock = FlakyClock()
    clock.open()
    clock.fail = True
    timers = ManualTimerFactory()
    scheduler = BeatScheduler(clock, timer_factory=timers)

    with pytest.raises(RuntimeError):
        scheduler.start(TempoConfig())

    assert not scheduler.running
    assert timers.pending_count == 0
    clock.fail = False
    scheduler.start()
    assert scheduler.running


def test_invalid_direct_assignment_never_reaches_running_scheduler(rig):
    tempo_config = TempoConfig(beats_per_minute=120, beats_per_measure=4)
    rig.scheduler.start(tempo_config)

    with pytest.raises(InvalidTempoConfigError):
        tempo_config.beats_per_minute = 5000
    with pytest.raises(InvalidTempoConfigError):
        tempo_config.beats_per_measure = 0

    rig.run_for(2.0)
    assert rig.scheduler.running
    times = [t.time for t in rig.tones]
    assert [b - a for a, b in zip(times, times[1:])] == pytest.approx([0.5] * (len(times) - 1))
    assert [t.accent for t in rig.tones] == [i % 4 == 0 for i in range(len(rig.tones))]


def test_each_beat_uses_one_read_of_the_signature(rig):
    received = []
    rig.scheduler.add_beat_callback(received.append)
    rig.scheduler.start(WobblingSignature(beats_per_minute=240))
    rig.run_for(3.0)

    assert len(received) > 8
    for event in received:
        assert event.is_accent == (event.beat_in_measure == 0)
